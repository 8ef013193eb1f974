"""Duration parsing for PlayFab bans and mutes.

Accepted input is either a bare non-negative integer, read as hours, or an
integer followed by one unit letter: ``m`` (minutes), ``h`` (hours),
``d`` (days) or ``w`` (weeks). Matching is case-insensitive and ignores
surrounding whitespace.
"""

import datetime
import math
import re
from typing import Optional

from supportbot.errors import InvalidDuration

_DURATION_RE = re.compile(r"^(\d+)([mhdw])?$")

_UNIT_MS = {
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
    "w": 604_800_000,
}


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def format_timestamp(moment: datetime.datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2025-07-26T14:30:00.000+00:00."""
    return moment.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))


def duration_to_ms(text: str) -> int:
    """Exact length of a duration expression in milliseconds."""
    cleaned = (text or "").strip().lower()
    match = _DURATION_RE.match(cleaned)
    if not match:
        raise InvalidDuration(text)
    amount = int(match.group(1))
    unit = match.group(2) or "h"
    return amount * _UNIT_MS[unit]


def to_hours(text: Optional[str]) -> int:
    """Whole hours for the ban API. Blank means permanent (0); minutes round up."""
    if not text or not text.strip():
        return 0
    return math.ceil(duration_to_ms(text) / _UNIT_MS["h"])


def expiry_from(text: str, now: Optional[datetime.datetime] = None) -> datetime.datetime:
    """Absolute expiry, exact to the millisecond."""
    start = now or utc_now()
    try:
        return start + datetime.timedelta(milliseconds=duration_to_ms(text))
    except OverflowError:
        # accepted by the grammar but past datetime.max
        raise InvalidDuration(text)
