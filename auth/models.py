"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/, web/, core/, or replies/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """The application's own identity record (the "local user").

    twitter_user_id is the authoritative identity key -- UNIQUE in the DB, so
    at most one User exists per Twitter account. email is only the bootstrap
    identifier used when the record is first created: the real address when
    Twitter shares it, otherwise twitter_<id>@x-reply-manager.local.

    id is a uuid4 hex string assigned by the store on insert.
    """

    email: str
    twitter_user_id: str
    twitter_handle: str = ""
    display_name: str = ""
    avatar_url: str | None = None
    id: str | None = None
    daily_digest_time: str = "09:00"  # HH:MM, 24h, in the user's timezone
    timezone: str = "UTC"  # IANA name
    digest_configured: bool = False
    # Public profile, refreshed from users/me on every sign-in.
    bio: str = ""
    verified: bool = False
    followers_count: int = 0
    following_count: int = 0
    tweet_count: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None
    is_active: bool = True


@dataclass
class Session:
    """A server-side login session.

    id is HMAC-SHA256(SECRET_KEY, raw_token). The raw token only ever lives in
    the browser's httpOnly cookie, so a leaked sessions table cannot be
    replayed.
    """

    id: str
    user_id: str
    expires_at: str  # ISO 8601 UTC
    created_at: str | None = None


@dataclass
class StoredCredential:
    """Twitter tokens for one user. Overwritten, never appended, on reconnect.

    Values here are plaintext; auth/credentials.py encrypts them before they
    reach the database. refresh_token is "" when Twitter returned none.
    """

    access_token: str
    twitter_user_id: str
    twitter_handle: str
    refresh_token: str = ""
    user_id: str | None = None
    updated_at: str | None = None
