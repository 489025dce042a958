"""
targets/store.py -- SQLAlchemy Core persistence for monitoring targets.

Pattern: Repository + Data Mapper, same as replies/store.py. TargetStore is
the repository; _row_to_target is the mapper.

Schema:
  monitoring_targets  -- one row per target: owner, name, type, status
  topic_targets       -- the keyword/hashtag filter, UNIQUE per target
Both rows are written and deleted in one transaction, so a target never
exists without its topic configuration.

Ownership:
  Every call that takes a target_id also takes the caller's user_id and puts
  both in the WHERE clause. Another user's target reads as missing.

Validation:
  A target needs a non-empty name and at least one keyword or hashtag, on
  create and after every update. Violations raise InvalidTargetError.

Layer rule: no imports from api/ or web/. Import from auth/ (the shared
engine factory) and core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, MetaData, String, Table, select
from sqlalchemy.engine import Engine

from auth.store import make_engine
from core.config import get_settings
from targets.models import TARGET_STATUSES, TARGET_TYPES, MonitoringTarget, normalize_hashtags, normalize_terms

logger = logging.getLogger("xreply.targets.store")

NAME_MAX_LENGTH = 100

_metadata = MetaData()

_targets = Table(
    "monitoring_targets",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(32), nullable=False),
    Column("name", String(NAME_MAX_LENGTH), nullable=False),
    Column("target_type", String(16), nullable=False, server_default="topic"),
    Column("status", String(16), nullable=False, server_default="active"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_monitoring_targets_user_id", "user_id"),
)

_topics = Table(
    "topic_targets",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "monitoring_target_id",
        Integer,
        ForeignKey("monitoring_targets.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("keywords", JSON, nullable=False),
    Column("hashtags", JSON, nullable=False),
    Column("exclude_keywords", JSON, nullable=False),
    Column("min_engagement", Integer, nullable=False, server_default="0"),
    Column("languages", JSON, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_TOPIC_COLUMNS = (
    _topics.c.keywords,
    _topics.c.hashtags,
    _topics.c.exclude_keywords,
    _topics.c.min_engagement,
    _topics.c.languages,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InvalidTargetError(ValueError):
    """The target violates a field rule (name, keywords/hashtags, status)."""


def validate_target(target: MonitoringTarget) -> MonitoringTarget:
    """Return a normalized copy of target, or raise InvalidTargetError."""
    cleaned = replace(
        target,
        name=target.name.strip(),
        keywords=normalize_terms(target.keywords),
        hashtags=normalize_hashtags(target.hashtags),
        exclude_keywords=normalize_terms(target.exclude_keywords),
        languages=normalize_terms(target.languages) or ["en"],
    )
    if not cleaned.name:
        raise InvalidTargetError("A target needs a name.")
    if len(cleaned.name) > NAME_MAX_LENGTH:
        raise InvalidTargetError(f"Target names are limited to {NAME_MAX_LENGTH} characters.")
    if not cleaned.keywords and not cleaned.hashtags:
        raise InvalidTargetError("A target needs at least one keyword or hashtag.")
    if cleaned.status not in TARGET_STATUSES:
        raise InvalidTargetError(f"Unknown target status: {cleaned.status!r}")
    if cleaned.target_type not in TARGET_TYPES:
        raise InvalidTargetError(f"Unsupported target type: {cleaned.target_type!r}")
    if cleaned.min_engagement < 0:
        raise InvalidTargetError("min_engagement cannot be negative.")
    return cleaned


class TargetStore:
    """Repository for MonitoringTarget rows.

    Usage:
        targets = TargetStore()
        target_id = targets.create_target(MonitoringTarget(user_id=u.id, name="AI", keywords=["llm"]))
        targets.update_target(target_id, u.id, status="paused")
        targets.close()
    """

    # Fields update_target() accepts. Anything else raises ValueError.
    _MUTABLE_FIELDS: set = {"name", "status", "keywords", "hashtags", "exclude_keywords", "min_engagement"}

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create_target(self, target: MonitoringTarget) -> int:
        """Validate and insert a target with its topic row. Returns the new id."""
        target = validate_target(target)
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _targets.insert().values(
                    user_id=target.user_id,
                    name=target.name,
                    target_type=target.target_type,
                    status=target.status,
                    created_at=now,
                    updated_at=now,
                )
            )
            target_id = result.inserted_primary_key[0]
            conn.execute(
                _topics.insert().values(
                    monitoring_target_id=target_id,
                    keywords=target.keywords,
                    hashtags=target.hashtags,
                    exclude_keywords=target.exclude_keywords,
                    min_engagement=target.min_engagement,
                    languages=target.languages,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("Created monitoring target %s for user %s", target_id, target.user_id)
        return target_id

    def _select(self):
        return select(_targets, *_TOPIC_COLUMNS).select_from(
            _targets.outerjoin(_topics, _topics.c.monitoring_target_id == _targets.c.id)
        )

    def get(self, target_id: int, user_id: str) -> Optional[MonitoringTarget]:
        """Fetch one target owned by user_id. Returns None if not found or not owned."""
        query = self._select().where((_targets.c.id == target_id) & (_targets.c.user_id == user_id))
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_target(row) if row is not None else None

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> list[MonitoringTarget]:
        """Return the user's targets, newest first, optionally filtered by status."""
        query = self._select().where(_targets.c.user_id == user_id)
        if status is not None:
            query = query.where(_targets.c.status == status)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_targets.c.created_at.desc(), _targets.c.id.desc())).fetchall()
        return [_row_to_target(r) for r in rows]

    def update_target(self, target_id: int, user_id: str, **fields) -> bool:
        """Apply a partial update to an owned target.

        The merged result must still satisfy validate_target().

        Returns True if the target was updated, False if target_id does not
        exist or belongs to another user.

        Raises:
            ValueError: an unknown field name was passed.
            InvalidTargetError: the merged target is invalid.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown target fields: {unknown!r}")
        current = self.get(target_id, user_id)
        if current is None:
            return False
        merged = validate_target(replace(current, **fields))
        now = _now_iso()
        owned = (_targets.c.id == target_id) & (_targets.c.user_id == user_id)
        with self.engine.begin() as conn:
            result = conn.execute(
                _targets.update().where(owned).values(name=merged.name, status=merged.status, updated_at=now)
            )
            if result.rowcount == 0:
                return False
            conn.execute(
                _topics.update()
                .where(_topics.c.monitoring_target_id == target_id)
                .values(
                    keywords=merged.keywords,
                    hashtags=merged.hashtags,
                    exclude_keywords=merged.exclude_keywords,
                    min_engagement=merged.min_engagement,
                    updated_at=now,
                )
            )
        return True

    def delete_target(self, target_id: int, user_id: str) -> bool:
        """Delete an owned target and its topic row. Returns False if nothing was deleted."""
        owned = (_targets.c.id == target_id) & (_targets.c.user_id == user_id)
        with self.engine.begin() as conn:
            result = conn.execute(_targets.delete().where(owned))
            if result.rowcount == 0:
                return False
            conn.execute(_topics.delete().where(_topics.c.monitoring_target_id == target_id))
        logger.info("Deleted monitoring target %s for user %s", target_id, user_id)
        return True

    def close(self) -> None:
        self.engine.dispose()


def _row_to_target(row) -> MonitoringTarget:
    return MonitoringTarget(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        target_type=row.target_type,
        status=row.status,
        keywords=list(row.keywords or []),
        hashtags=list(row.hashtags or []),
        exclude_keywords=list(row.exclude_keywords or []),
        min_engagement=row.min_engagement or 0,
        languages=list(row.languages or ["en"]),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
