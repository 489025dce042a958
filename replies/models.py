"""
replies/models.py -- Domain dataclass for reply suggestions.

Pure data container. Status transitions and ownership checks live in
replies/store.py.
"""

from dataclasses import dataclass
from typing import Optional

# Every status a suggestion can hold. "pending" is the initial state; the
# others are set by the user from the dashboard or the API.
REPLY_STATUSES = ("pending", "approved", "edited", "skipped", "posted")

# A reply is a tweet.
REPLY_MAX_LENGTH = 280


@dataclass
class ReplySuggestion:
    """A suggested reply to a curated post, owned by one user.

    user_edited_reply is None until the user edits the suggestion; the
    original suggested_reply is kept alongside it.

    id is None before the record is written to the database.
    """

    user_id: str
    suggested_reply: str
    post_content: str = ""
    post_author_handle: str = ""
    post_url: Optional[str] = None
    curated_post_id: Optional[str] = None
    user_edited_reply: Optional[str] = None
    status: str = "pending"  # see REPLY_STATUSES
    posted_at: Optional[str] = None  # ISO 8601, set when status becomes "posted"
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    id: Optional[int] = None

    @property
    def reply_text(self) -> str:
        """The text that would be posted: the user's edit if any, else the suggestion."""
        return self.user_edited_reply or self.suggested_reply
