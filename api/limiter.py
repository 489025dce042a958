"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware, exposed as app.state.limiter)
and api/routes/twitter.py (per-route limits on the OAuth initiator and
callback via @limiter.limit()).

One instance for the whole app: separate Limiter objects would each keep
their own in-memory counters and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def oauth_rate_limit() -> str:
    """Limit string for the OAuth endpoints, read at request time."""
    return get_settings().oauth_rate_limit
