"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware, exposed on app.state) and by
api/routes/v2/session.py (per-route limit on sign-in with @limiter.limit()).

One shared instance means one in-memory counter store; a limiter per module
would keep isolated counters and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
