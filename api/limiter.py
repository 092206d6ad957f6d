"""
api/limiter.py -- Process-wide slowapi limiter for the credential endpoints.

Only /auth/register and /auth/login carry a limit: they are the two routes
that run bcrypt on attacker-supplied input, so throttling them per client
address bounds both password guessing and CPU burn. Authenticated routes are
already gated by a signed token and are left unlimited.

api/main.py mounts the instance on app.state and as middleware; route
modules decorate with @limiter.limit(). Counters live in process memory, so
every worker enforces its own budget.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
