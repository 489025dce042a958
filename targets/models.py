"""
targets/models.py -- Domain dataclass for monitoring targets.

A monitoring target tells the curation pipeline which posts a user wants to
reply to. Only topic targets (keywords and hashtags) are supported; the
topic configuration is stored in its own table, one row per target.

normalize_terms() and normalize_hashtags() are the single place list input
is cleaned, so the API and the store agree on what "empty" means.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

TARGET_STATUSES = ("active", "paused", "archived")
TARGET_TYPES = ("topic",)


@dataclass
class MonitoringTarget:
    """A named topic a user monitors, with its keyword/hashtag filter.

    A target must have a non-empty name and at least one keyword or hashtag.
    min_engagement is the minimum likes + retweets + replies a post needs.

    id is None before the record is written to the database.
    """

    user_id: str
    name: str
    keywords: list[str] = field(default_factory=list)
    hashtags: list[str] = field(default_factory=list)
    exclude_keywords: list[str] = field(default_factory=list)
    min_engagement: int = 0
    languages: list[str] = field(default_factory=lambda: ["en"])
    target_type: str = "topic"
    status: str = "active"  # see TARGET_STATUSES
    created_at: str = ""
    updated_at: str = ""
    id: Optional[int] = None


def normalize_terms(values: Iterable[str]) -> list[str]:
    """Strip whitespace, drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for value in values:
        term = value.strip()
        if term and term not in seen:
            seen.append(term)
    return seen


def normalize_hashtags(values: Iterable[str]) -> list[str]:
    """normalize_terms(), with exactly one leading "#" on each tag."""
    tags = (v.strip().lstrip("#") for v in values)
    return normalize_terms(f"#{t}" for t in tags if t)
