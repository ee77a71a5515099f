"""Timezone-aware clock utilities.

All timestamps in brenner-loop MUST be UTC-aware.  This module is the
single source of "now" so tests can monkey-patch it trivially.

Records round-trip through JSON storage, so every date may come back as
an ISO-8601 string.  ``to_utc`` and the ``UtcDatetime`` field type accept
either form.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Union

from pydantic import AfterValidator


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc(value: Union[datetime, str]) -> datetime:
    """Coerce a datetime or ISO-8601 string into an aware UTC datetime.

    Raises:
        ValueError: If *value* is a string that is not a valid ISO date.
        TypeError: If *value* is neither a string nor a datetime.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        # fromisoformat() only learned the trailing "Z" in 3.11
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise TypeError(f"expected datetime or ISO string, got {type(value).__name__}")


def is_valid_date(value: object) -> bool:
    """True if *value* is a datetime or a parseable ISO-8601 string."""
    try:
        to_utc(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return False
    return True


# Pydantic already parses ISO strings into datetimes; this only normalises tz.
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
