"""
Journal clock.

Every journal line carries a UTC timestamp at millisecond precision with
a literal Z, e.g. 2025-03-01T09:30:00.125Z. models.validate_schema()
rejects anything else, so entries must take their time from here.
"""

from datetime import datetime, timezone
from typing import Optional


def journal_timestamp(now: Optional[datetime] = None) -> str:
    """Format now (default: the current time) for a journal line."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        raise ValueError("journal timestamps need an aware datetime")
    now = now.astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
