"""audit/ -- Append-only activity log: payload types, store, writer and helpers.

Layer rule: audit/ may import from auth/ and core/. It does NOT import from
api/, actions/ or maintenance/.
"""
