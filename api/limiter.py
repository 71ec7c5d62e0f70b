"""
api/limiter.py -- The one slowapi Limiter for the process.

api/main.py registers it on app.state for SlowAPIMiddleware; the login route
decorates itself with limiter.limit(login_rate_limit). Counters live in
process memory and are keyed by client IP, so they reset on restart and are
not shared between workers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Login limit string, read from settings at request time (e.g. "10/minute")."""
    return get_settings().login_rate_limit
