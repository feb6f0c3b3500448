"""
api/limiter.py -- The one slowapi Limiter shared by every route.

api/main.py mounts it as middleware; api/routes/auth.py applies the sign-in
limit with @limiter.limit(). Both must see the same instance or the counters
would be split per module and the sign-in limit would never trip.

Counters live in process memory and reset on restart.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
