"""
api/limiter.py -- Shared slowapi rate limiter for the credential endpoints.

api/main.py mounts it as middleware; api/routes/v1/auth.py applies the
AUTH_RATE_LIMIT to login and register with @limiter.limit(auth_rate_limit).
A single instance is required: separate instances keep separate counters and
the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def auth_rate_limit() -> str:
    """Limit string for brute-forceable endpoints, read at request time from settings."""
    return get_settings().auth_rate_limit
