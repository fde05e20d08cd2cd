"""
Time Utilities

Binance reports every timestamp as milliseconds since the Unix epoch
(e.g., 1704110400000) and expects the same unit in the `timestamp`,
`startTime` and `endTime` query parameters.

The helpers here convert between those integers and timezone-aware UTC
datetimes without going through floats, so a value read from the wire can be
written back unchanged.
"""

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ONE_MILLISECOND = timedelta(milliseconds=1)


def from_millis(millis: int) -> datetime:
    """
    Convert integer milliseconds since epoch to a UTC datetime, exactly.

    Example:
        >>> from_millis(1499644799999)
        datetime.datetime(2017, 7, 9, 23, 59, 59, 999000, tzinfo=datetime.timezone.utc)
    """
    if millis < 0:
        raise ValueError(f"Timestamp cannot be negative: {millis}")
    return EPOCH + timedelta(milliseconds=millis)


def to_millis(dt: datetime) -> int:
    """
    Convert a datetime to integer milliseconds since epoch.

    Naive datetimes are assumed to be UTC. Sub-millisecond precision is
    truncated.

    Example:
        >>> to_millis(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))
        1704110400000
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - EPOCH) // _ONE_MILLISECOND


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Args:
        milliseconds: If True, return milliseconds; if False, return seconds

    Returns:
        int: Current Unix timestamp

    Examples:
        >>> current_utc_timestamp()
        1704110400

        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    millis = to_millis(datetime.now(timezone.utc))
    return millis if milliseconds else millis // 1000
