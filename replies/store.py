"""
replies/store.py -- SQLAlchemy Core persistence for reply suggestions.

Pattern: Repository + Data Mapper, same as auth/store.py. ReplyStore is the
repository; _row_to_reply is the mapper.

Ownership:
  Every read or mutation that takes a reply_id also takes the caller's
  user_id, and both go into the WHERE clause. A reply owned by someone else
  is indistinguishable from one that does not exist: get() returns None and
  mutations return False. Routes map both to 404.

Status transitions:
  pending  -> approved | edited | skipped | posted
  edited   -> approved | edited | skipped | posted
  approved -> edited | skipped | posted
  skipped and posted are terminal.
  Posting to Twitter is out of scope; mark_posted only records the status
  and posted_at.

Layer rule: no imports from api/ or web/. Import from auth/ (the shared
engine factory) and core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.store import make_engine
from core.config import get_settings
from replies.models import REPLY_STATUSES, ReplySuggestion

logger = logging.getLogger("xreply.replies.store")

_metadata = MetaData()

_replies = Table(
    "reply_suggestions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(32), nullable=False),
    Column("curated_post_id", String(64)),
    Column("post_content", Text, nullable=False, server_default=""),
    Column("post_author_handle", String(50), nullable=False, server_default=""),
    Column("post_url", Text),
    Column("suggested_reply", Text, nullable=False),
    Column("user_edited_reply", Text),
    Column("status", String(16), nullable=False, server_default="pending"),
    Column("posted_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_reply_suggestions_user_status", "user_id", "status"),
)

# Allowed source statuses for each target status.
_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "approved": ("pending", "edited"),
    "edited": ("pending", "edited", "approved"),
    "skipped": ("pending", "edited", "approved"),
    "posted": ("pending", "edited", "approved"),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InvalidTransitionError(ValueError):
    """The reply exists but its current status does not allow the change."""


class ReplyStore:
    """Repository for ReplySuggestion rows.

    Usage:
        replies = ReplyStore()
        reply_id = replies.create_suggestion(ReplySuggestion(user_id=u.id, suggested_reply="..."))
        replies.update_status(reply_id, u.id, "approved")
        replies.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create_suggestion(self, reply: ReplySuggestion) -> int:
        """Insert a suggestion and return its assigned database ID."""
        if reply.status not in REPLY_STATUSES:
            raise ValueError(f"Unknown reply status: {reply.status!r}")
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _replies.insert().values(
                    user_id=reply.user_id,
                    curated_post_id=reply.curated_post_id,
                    post_content=reply.post_content,
                    post_author_handle=reply.post_author_handle,
                    post_url=reply.post_url,
                    suggested_reply=reply.suggested_reply,
                    user_edited_reply=reply.user_edited_reply,
                    status=reply.status,
                    posted_at=reply.posted_at,
                    created_at=reply.created_at or now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get(self, reply_id: int, user_id: str) -> Optional[ReplySuggestion]:
        """Fetch one suggestion owned by user_id. Returns None if not found or not owned."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _replies.select().where((_replies.c.id == reply_id) & (_replies.c.user_id == user_id))
            ).fetchone()
        return _row_to_reply(row) if row is not None else None

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> list[ReplySuggestion]:
        """Return the user's suggestions, newest first, optionally filtered by status."""
        query = _replies.select().where(_replies.c.user_id == user_id)
        if status is not None:
            query = query.where(_replies.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_replies.c.created_at.desc(), _replies.c.id.desc())).fetchall()
        return [_row_to_reply(r) for r in rows]

    def update_status(self, reply_id: int, user_id: str, status: str) -> bool:
        """Move a suggestion to a new status.

        Returns True if the row was updated, False if reply_id does not exist
        or belongs to another user.

        Raises:
            ValueError: status is not a known target status.
            InvalidTransitionError: the current status does not allow it.
        """
        allowed_from = _TRANSITIONS.get(status)
        if allowed_from is None:
            raise ValueError(f"Cannot move a reply to status {status!r}")
        values = {"status": status, "updated_at": _now_iso()}
        if status == "posted":
            values["posted_at"] = values["updated_at"]
        owned = (_replies.c.id == reply_id) & (_replies.c.user_id == user_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _replies.update().where(owned & _replies.c.status.in_(allowed_from)).values(**values)
            )
            conn.commit()
        if result.rowcount > 0:
            logger.info("Reply %s for user %s -> %s", reply_id, user_id, status)
            return True
        current = self.get(reply_id, user_id)
        if current is None:
            return False
        raise InvalidTransitionError(f"Reply {reply_id} is {current.status!r}; cannot move to {status!r}")

    def edit_reply(self, reply_id: int, user_id: str, text: str) -> bool:
        """Store the user's edited text and set status to "edited".

        Same return and raise contract as update_status().
        """
        allowed_from = _TRANSITIONS["edited"]
        owned = (_replies.c.id == reply_id) & (_replies.c.user_id == user_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _replies.update()
                .where(owned & _replies.c.status.in_(allowed_from))
                .values(user_edited_reply=text, status="edited", updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount > 0:
            return True
        current = self.get(reply_id, user_id)
        if current is None:
            return False
        raise InvalidTransitionError(f"Reply {reply_id} is {current.status!r}; it can no longer be edited")

    def close(self) -> None:
        self.engine.dispose()


def _row_to_reply(row) -> ReplySuggestion:
    return ReplySuggestion(
        id=row.id,
        user_id=row.user_id,
        curated_post_id=row.curated_post_id,
        post_content=row.post_content,
        post_author_handle=row.post_author_handle,
        post_url=row.post_url,
        suggested_reply=row.suggested_reply,
        user_edited_reply=row.user_edited_reply,
        status=row.status,
        posted_at=row.posted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
