"""
API request and response models for the X Reply Manager REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py,
replies/models.py and targets/models.py, which own the internal domain
representation. Route handlers map between the two.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from core.digest import DIGEST_TIME_PATTERN, validate_timezone
from replies.models import REPLY_MAX_LENGTH, ReplySuggestion
from targets.models import MonitoringTarget

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ReplyStatusEnum(str, Enum):
    pending = "pending"
    approved = "approved"
    edited = "edited"
    skipped = "skipped"
    posted = "posted"


class TargetStatusEnum(str, Enum):
    active = "active"
    paused = "paused"
    archived = "archived"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    twitter_user_id: str
    twitter_handle: str
    display_name: str
    avatar_url: Optional[str]
    bio: str
    verified: bool
    followers_count: int
    following_count: int
    tweet_count: int
    twitter_connected: bool

    @classmethod
    def from_user(cls, user: User, twitter_connected: bool) -> "MeResponse":
        return cls(
            user_id=user.id,
            email=user.email,
            twitter_user_id=user.twitter_user_id,
            twitter_handle=user.twitter_handle,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            bio=user.bio,
            verified=user.verified,
            followers_count=user.followers_count,
            following_count=user.following_count,
            tweet_count=user.tweet_count,
            twitter_connected=twitter_connected,
        )


class MessageResponse(BaseModel):
    """Plain acknowledgement body for actions with nothing else to return."""

    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Digest preferences
# ---------------------------------------------------------------------------


class DigestPreferences(BaseModel):
    """Response for GET/PUT /api/v1/settings/digest."""

    model_config = ConfigDict(frozen=True)

    daily_digest_time: str
    timezone: str
    digest_configured: bool


class DigestPreferencesUpdate(BaseModel):
    """Request body for PUT /api/v1/settings/digest."""

    model_config = ConfigDict(str_strip_whitespace=True)

    daily_digest_time: str = Field(pattern=DIGEST_TIME_PATTERN, description="24-hour HH:MM")
    timezone: str = Field(min_length=1, max_length=64, description="IANA timezone name")

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        return validate_timezone(value)


# ---------------------------------------------------------------------------
# Reply suggestions
# ---------------------------------------------------------------------------


class ReplyResponse(BaseModel):
    """One reply suggestion as returned by the replies endpoints."""

    model_config = ConfigDict(frozen=True)

    id: int
    status: ReplyStatusEnum
    post_content: str
    post_author_handle: str
    post_url: Optional[str]
    suggested_reply: str
    user_edited_reply: Optional[str]
    reply_text: str
    posted_at: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_reply(cls, reply: ReplySuggestion) -> "ReplyResponse":
        """Build a ReplyResponse from a store ReplySuggestion."""
        return cls(
            id=reply.id,
            status=reply.status,
            post_content=reply.post_content,
            post_author_handle=reply.post_author_handle,
            post_url=reply.post_url,
            suggested_reply=reply.suggested_reply,
            user_edited_reply=reply.user_edited_reply,
            reply_text=reply.reply_text,
            posted_at=reply.posted_at,
            created_at=reply.created_at,
            updated_at=reply.updated_at,
        )


class ReplyEdit(BaseModel):
    """Request body for PATCH /api/v1/replies/{reply_id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    text: str = Field(min_length=1, max_length=REPLY_MAX_LENGTH, description="Edited reply text (tweet length)")


# ---------------------------------------------------------------------------
# Monitoring targets
# ---------------------------------------------------------------------------


class TargetResponse(BaseModel):
    """One monitoring target with its topic filter."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    target_type: str
    status: TargetStatusEnum
    keywords: list[str]
    hashtags: list[str]
    exclude_keywords: list[str]
    min_engagement: int
    languages: list[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_target(cls, target: MonitoringTarget) -> "TargetResponse":
        return cls(
            id=target.id,
            name=target.name,
            target_type=target.target_type,
            status=target.status,
            keywords=target.keywords,
            hashtags=target.hashtags,
            exclude_keywords=target.exclude_keywords,
            min_engagement=target.min_engagement,
            languages=target.languages,
            created_at=target.created_at,
            updated_at=target.updated_at,
        )


class TargetCreate(BaseModel):
    """Request body for POST /api/v1/targets.

    Shape only; the name and keyword/hashtag rules are enforced by
    targets.store.validate_target so the API and the store cannot disagree.
    """

    name: str = Field(max_length=200)
    keywords: list[str] = Field(default_factory=list, max_length=50)
    hashtags: list[str] = Field(default_factory=list, max_length=50)
    exclude_keywords: list[str] = Field(default_factory=list, max_length=50)
    min_engagement: int = Field(default=0, ge=0)


class TargetUpdate(BaseModel):
    """Request body for PUT /api/v1/targets/{target_id}. Omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, max_length=200)
    status: Optional[TargetStatusEnum] = None
    keywords: Optional[list[str]] = Field(default=None, max_length=50)
    hashtags: Optional[list[str]] = Field(default=None, max_length=50)
    exclude_keywords: Optional[list[str]] = Field(default=None, max_length=50)
    min_engagement: Optional[int] = Field(default=None, ge=0)
