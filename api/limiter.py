"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware and attach to app.state)
and in route modules that need per-route overrides or exemptions.

A single shared instance means all routes share the same in-memory counter
store. default_limits applies API_RATE_LIMIT to every route through
SlowAPIMiddleware; routes opt out with @limiter.exempt.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_settings().api_rate_limit],
    storage_uri="memory://",
)
