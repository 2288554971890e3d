"""Expiration timestamp encoding and TTL checks."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from fcache.exceptions import InvalidMetadataError
from fcache.metadata import FileMeta

# Metadata key carrying the moment an item becomes eligible for removal
INVALIDATE_AT_KEY = "_invalidate_at"

_EXPIRY_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def utcnow() -> datetime:
    """Return the current time as a UTC-aware datetime."""
    return datetime.now(timezone.utc)


def format_expiry(moment: datetime) -> str:
    """Encode a moment as a fixed-width UTC timestamp with 9 fractional digits.

    The output sorts lexicographically in time order.

    Args:
        moment: Timezone-aware datetime (naive values are taken as UTC)

    Returns:
        Timestamp string such as '2022-07-05T06:51:21.000000000Z'

    Examples:
        >>> format_expiry(datetime(2022, 7, 5, 6, 51, 21, 5, tzinfo=timezone.utc))
        '2022-07-05T06:51:21.000005000Z'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond:06d}000Z"


def parse_expiry(value: str, key: Optional[str] = None) -> datetime:
    """Decode an expiration timestamp.

    Accepts the fixed-width format written by format_expiry, any fractional
    precision up to nanoseconds (truncated to microseconds), and anything
    datetime.fromisoformat understands.

    Args:
        value: Encoded timestamp
        key: Key the timestamp belongs to, used in the error message

    Returns:
        UTC-aware datetime

    Raises:
        InvalidMetadataError: If the value cannot be parsed
    """
    if not isinstance(value, str):
        raise InvalidMetadataError(key, repr(value), "not a string")

    match = _EXPIRY_RE.match(value.strip())
    try:
        if match:
            frac = (match.group("frac") or "").ljust(9, "0")[:6]
            tz = match.group("tz")
            tz = "+00:00" if tz == "Z" else tz
            parsed = datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")
        else:
            parsed = datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidMetadataError(key, value, str(e)) from e

    # Handle timezone-naive datetimes
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_expired(expiry: datetime, now: datetime) -> bool:
    """Check whether a deadline has passed.

    An item is expired only strictly after its deadline.
    """
    return expiry < now


def get_expiry(meta: FileMeta) -> Optional[datetime]:
    """Return the parsed expiration of an item, or None if it has none.

    Raises:
        InvalidMetadataError: If the stored timestamp cannot be parsed
    """
    value = (meta.meta or {}).get(INVALIDATE_AT_KEY)
    if value is None:
        return None
    return parse_expiry(value, meta.key or None)


def set_expiry(meta: FileMeta, moment: datetime) -> FileMeta:
    """Inject or overwrite the expiration key of an item, in place."""
    if meta.meta is None:
        meta.meta = {}
    meta.meta[INVALIDATE_AT_KEY] = format_expiry(moment)
    return meta


def get_ttl_remaining(meta: FileMeta, now: Optional[datetime] = None) -> Optional[int]:
    """Get remaining seconds until an item expires.

    Returns:
        Seconds remaining (never negative), or None if the item never expires
    """
    expiry = get_expiry(meta)
    if expiry is None:
        return None
    remaining = expiry - (now or utcnow())
    return max(0, int(remaining / timedelta(seconds=1)))
