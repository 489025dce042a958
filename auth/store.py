"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_session are the mappers. Route and dependency code
never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Identity invariant:
  UNIQUE(twitter_user_id) is enforced in SQL. Every user is created by the
  Twitter callback, so the column is never NULL and SQLite's "NULLs are
  distinct" rule does not apply. resolve_twitter_user() treats the
  constraint as the arbiter between concurrent callbacks: insert, and on
  IntegrityError re-read by twitter_user_id instead of inserting again.

Layer rule: no imports from api/, web/, or replies/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Session, User
from auth.tokens import generate_session_token, hash_session_token
from core.config import get_settings

logger = logging.getLogger("xreply.auth.store")

SYNTHETIC_EMAIL_DOMAIN = "x-reply-manager.local"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(320), nullable=False, unique=True),
    Column("twitter_user_id", String(64), nullable=False, unique=True),
    Column("twitter_handle", String(50), nullable=False, server_default=""),
    Column("display_name", String(100), nullable=False, server_default=""),
    Column("avatar_url", Text),
    Column("daily_digest_time", String(5), nullable=False, server_default="09:00"),
    Column("timezone", String(64), nullable=False, server_default="UTC"),
    Column("digest_configured", Integer, nullable=False, server_default="0"),
    Column("bio", Text, nullable=False, server_default=""),
    Column("verified", Integer, nullable=False, server_default="0"),
    Column("followers_count", Integer, nullable=False, server_default="0"),
    Column("following_count", Integer, nullable=False, server_default="0"),
    Column("tweet_count", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),  # HMAC-SHA256 hex of the cookie token
    Column("user_id", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Index("ix_sessions_user_id", "user_id"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite settings every store here needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _now().isoformat()


def synthetic_email(twitter_user_id: str) -> str:
    """Deterministic placeholder identifier for accounts without an email.

    Stable across logins and distinct for distinct Twitter ids.
    """
    return f"twitter_{twitter_user_id}@{SYNTHETIC_EMAIL_DOMAIN}"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Session entities.

    Usage:
        store = UserStore()
        user = store.resolve_twitter_user("999", "alice", display_name="Alice")
        raw_token = store.create_session(user.id)
        store.get_session_user(raw_token)
        store.close()
    """

    # Columns update_user() accepts. Anything else raises ValueError.
    _MUTABLE_FIELDS: set = {
        "twitter_handle",
        "display_name",
        "avatar_url",
        "daily_digest_time",
        "timezone",
        "digest_configured",
        "bio",
        "verified",
        "followers_count",
        "following_count",
        "tweet_count",
        "is_active",
    }

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned id.

        Raises sqlalchemy.exc.IntegrityError if the email or twitter_user_id
        is already taken. resolve_twitter_user() relies on that.
        """
        user_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    twitter_user_id=user.twitter_user_id,
                    twitter_handle=user.twitter_handle,
                    display_name=user.display_name,
                    avatar_url=user.avatar_url,
                    daily_digest_time=user.daily_digest_time,
                    timezone=user.timezone,
                    digest_configured=1 if user.digest_configured else 0,
                    bio=user.bio,
                    verified=1 if user.verified else 0,
                    followers_count=user.followers_count,
                    following_count=user.following_count,
                    tweet_count=user.tweet_count,
                    created_at=now,
                    updated_at=now,
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_twitter_id(self, twitter_user_id: str) -> User | None:
        """Look up a user by Twitter's stable user id -- the authoritative key."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.twitter_user_id == twitter_user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def resolve_twitter_user(
        self,
        twitter_user_id: str,
        twitter_handle: str,
        display_name: str = "",
        email: str | None = None,
        avatar_url: str | None = None,
        bio: str = "",
        verified: bool = False,
        public_metrics: dict[str, int] | None = None,
    ) -> User | None:
        """Find or create the local user for a Twitter identity.

        Idempotent: every call for the same twitter_user_id returns the same
        user id, including concurrent first logins.

        Order:
          1. Existing user by twitter_user_id -- refresh profile fields, return.
          2. Insert with the bootstrap identifier (email, or the synthetic
             placeholder when Twitter shared none).
          3. On IntegrityError: another request won the insert race, so
             re-read by twitter_user_id. If still absent the email belongs to
             a different Twitter identity -- never merge on email, insert
             again under the synthetic identifier instead.

        Returns None when no user could be resolved. Database errors other
        than IntegrityError propagate to the caller. is_active is left as
        stored; refusing a deactivated user is the caller's decision.
        """
        metrics = public_metrics or {}
        profile = {
            "bio": bio,
            "verified": verified,
            "followers_count": metrics.get("followers_count", 0),
            "following_count": metrics.get("following_count", 0),
            "tweet_count": metrics.get("tweet_count", 0),
        }
        user = self.get_by_twitter_id(twitter_user_id)
        if user is not None:
            self.update_user(
                user.id,
                twitter_handle=twitter_handle,
                display_name=display_name or user.display_name,
                avatar_url=avatar_url or user.avatar_url,
                **profile,
            )
            return self.get_by_id(user.id)

        placeholder = synthetic_email(twitter_user_id)
        identifier = email or placeholder
        candidate = User(
            email=identifier,
            twitter_user_id=twitter_user_id,
            twitter_handle=twitter_handle,
            display_name=display_name,
            avatar_url=avatar_url,
            **profile,
        )
        try:
            user_id = self.create_user(candidate)
            logger.info("Created user %s for twitter id %s", user_id, twitter_user_id)
            return self.get_by_id(user_id)
        except IntegrityError:
            logger.info("Insert for twitter id %s conflicted; re-reading", twitter_user_id)

        user = self.get_by_twitter_id(twitter_user_id)
        if user is not None:
            return user

        if identifier != placeholder:
            logger.warning(
                "Email for twitter id %s already belongs to another account; using placeholder identifier",
                twitter_user_id,
            )
            candidate.email = placeholder
            try:
                self.create_user(candidate)
            except IntegrityError:
                logger.info("Placeholder insert for twitter id %s conflicted; re-reading", twitter_user_id)
            return self.get_by_twitter_id(twitter_user_id)

        return None

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Booleans are converted to 0/1 for SQLite. Unknown field names raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        for key in ("digest_configured", "verified", "is_active"):
            if key in fields:
                fields[key] = 1 if fields[key] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_digest_preferences(self, user_id: str, daily_digest_time: str, tz: str) -> bool:
        """Save the daily digest schedule and mark it configured."""
        return self.update_user(
            user_id,
            daily_digest_time=daily_digest_time,
            timezone=tz,
            digest_configured=True,
        )

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str, expire_seconds: int = 0) -> str:
        """Create a session for user_id and return the raw cookie token.

        Only the token's HMAC is stored. Raises on database failure -- the
        OAuth callback maps that to session_creation_failed.
        """
        duration = expire_seconds if expire_seconds > 0 else get_settings().session_expire_seconds
        raw_token = generate_session_token()
        now = _now()
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=hash_session_token(raw_token),
                    user_id=user_id,
                    created_at=now.isoformat(),
                    expires_at=(now + timedelta(seconds=duration)).isoformat(),
                )
            )
            conn.commit()
        return raw_token

    def get_session(self, raw_token: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == hash_session_token(raw_token))).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_session_user(self, raw_token: str) -> User | None:
        """Resolve a cookie token to an active user, or None.

        Expired sessions are deleted on sight. Reads through to the database
        on every call -- nothing is cached in-process.
        """
        if not raw_token:
            return None
        session = self.get_session(raw_token)
        if session is None:
            return None
        if datetime.fromisoformat(session.expires_at) <= _now():
            self.delete_session(raw_token)
            return None
        user = self.get_by_id(session.user_id)
        if user is None or not user.is_active:
            return None
        return user

    def delete_session(self, raw_token: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == hash_session_token(raw_token)))
            conn.commit()
        return result.rowcount > 0

    def purge_expired_sessions(self) -> int:
        """Delete all expired sessions. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= _now_iso()))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        twitter_user_id=row.twitter_user_id,
        twitter_handle=row.twitter_handle,
        display_name=row.display_name,
        avatar_url=row.avatar_url,
        daily_digest_time=row.daily_digest_time,
        timezone=row.timezone,
        digest_configured=bool(row.digest_configured),
        bio=row.bio,
        verified=bool(row.verified),
        followers_count=row.followers_count,
        following_count=row.following_count,
        tweet_count=row.tweet_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
        is_active=bool(row.is_active),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
