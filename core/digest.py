"""
core/digest.py -- Validation rules for the daily digest schedule.

Shared by the JSON API (api/models.py) and the settings form (web/routes.py)
so both accept exactly the same values.
"""

import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# 24-hour HH:MM, 00:00 through 23:59.
DIGEST_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
_DIGEST_TIME_RE = re.compile(DIGEST_TIME_PATTERN)


def is_valid_digest_time(value: str) -> bool:
    return bool(_DIGEST_TIME_RE.match(value or ""))


def validate_timezone(value: str) -> str:
    """Return value if it names an IANA timezone, else raise ValueError."""
    if not value:
        raise ValueError("Timezone is required")
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {value!r}") from exc
    return value
