"""
core/models.py -- Domain dataclasses for data returned by the Twitter API.

Pure data containers. Parsing from the raw JSON payloads lives in
core/twitter.py; persistence shapes live in auth/models.py.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class TokenResponse:
    """Result of a successful authorization-code or refresh-token grant.

    refresh_token is "" when the provider did not return one (the
    offline.access scope was not granted).
    """

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    scope: str = ""


@dataclass
class TwitterProfile:
    """The authenticated identity as reported by GET /2/users/me.

    id is Twitter's opaque, stable user id -- the only field used as an
    identity key. email is present only when the app has been granted
    email access; it is never trusted for matching existing users.
    """

    id: str
    username: str
    name: str = ""
    email: Optional[str] = None
    profile_image_url: Optional[str] = None
    verified: bool = False
    description: str = ""
    public_metrics: dict[str, int] = field(default_factory=dict)
