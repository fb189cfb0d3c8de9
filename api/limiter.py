"""
api/limiter.py -- The process-wide slowapi Limiter.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter) and
api/routes/auth.py decorates register/login with the tighter
LOGIN_RATE_LIMIT. Both must import this one object: counters live in the
limiter's storage, and a second Limiter would count separately.

Every other route gets default_limits, RATE_LIMIT_MAX requests per
RATE_LIMIT_WINDOW_SECONDS per client IP. RATE_LIMIT_ENABLED=false turns
throttling off; it touches nothing else.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=[_settings.default_rate_limit],
    enabled=_settings.rate_limit_enabled,
)
