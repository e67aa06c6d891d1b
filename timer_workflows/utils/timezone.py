"""
Timezone utilities for the workflow engine.

Rules are evaluated on servers whose local zone is usually UTC, while
administrators think in their team's zone. These helpers resolve the
configured zone once and hand back aware datetimes in it.
"""

from datetime import datetime, timezone
from typing import Optional

import pytz

DEFAULT_TIMEZONE = "UTC"


def resolve_timezone(name: Optional[str]) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Args:
        name: Timezone name such as "Europe/Berlin"; None or "" means UTC

    Returns:
        pytz timezone instance

    Raises:
        ValueError: If the name is not a known timezone
    """
    try:
        return pytz.timezone(name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def now_in(name: Optional[str] = None) -> datetime:
    """Return the current time as an aware datetime in the named zone."""
    return datetime.now(timezone.utc).astimezone(resolve_timezone(name))


def utc_now() -> datetime:
    """Return the current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(moment.timestamp() * 1000)
