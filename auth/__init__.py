"""auth/ -- Users, roles, permissions, entities, sessions and the Auth Guard.

Layer rule: auth/ imports only from core/, stdlib and third-party libraries.
It does NOT import from api/, audit/, actions/ or maintenance/.
api/, audit/ and actions/ import from auth/, not the other way around.
"""
