"""
api/limiter.py -- The one slowapi Limiter for the whole app.

api/main.py mounts it (SlowAPIMiddleware reads app.state.limiter) and
api/routes/auth.py decorates login with it. Counters live in the limiter's
storage, so a second Limiter instance would count separately and never trip.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for POST /api/auth/login, e.g. "10/minute" (LOGIN_RATE_LIMIT)."""
    return get_settings().login_rate_limit
