"""Utility functions for cloudsync."""

import time

# =============================================================================
# Constants for file operations
# =============================================================================

# Files larger than this are uploaded through an upload session (4 MB)
DEFAULT_SIMPLE_UPLOAD_LIMIT: int = 4 * 1024 * 1024

# Chunk size for upload sessions, a multiple of 320 KiB (10 MiB)
DEFAULT_CHUNK_SIZE: int = 32 * 320 * 1024

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# =============================================================================
# Timestamp utilities
# =============================================================================

_DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def now() -> int:
    """Return the current time as whole seconds since the epoch."""
    return int(time.time())


def is_leap_year(year: int) -> bool:
    """Return True for Gregorian leap years."""
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def days_in_year(year: int) -> int:
    return 366 if is_leap_year(year) else 365


def days_in_month(month: int, year: int) -> int:
    """Return the number of days in ``month`` (1-12) of ``year``."""
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS_IN_MONTH[month - 1]


def _parse_number(text: str, field_name: str, value: str) -> int:
    if not text.isdigit():
        raise ValueError(f"Invalid {field_name} in timestamp: {value!r}")
    return int(text)


def parse_iso_timestamp(value: str) -> int:
    """Parse a UTC ISO 8601 timestamp into seconds since the epoch.

    Only the ``Z`` designator is accepted. Fractional seconds are ignored.
    Calendar arithmetic is done here rather than through ``datetime`` so
    the result never depends on the local timezone.

    Args:
        value: Timestamp such as "2023-08-06T13:23:00.093Z"

    Returns:
        Unix timestamp in whole seconds

    Raises:
        ValueError: If the string is malformed or not in UTC

    Examples:
        >>> parse_iso_timestamp("2023-08-06T13:23:00Z")
        1691328180
    """
    if not value.endswith("Z"):
        raise ValueError(f"Only UTC timestamps ending in 'Z' are supported: {value!r}")

    date_str, sep, time_str = value.partition("T")
    if not sep:
        raise ValueError(f"Missing 'T' separator in timestamp: {value!r}")

    date_tokens = date_str.split("-")
    time_tokens = time_str.split(":")
    if len(date_tokens) != 3 or len(time_tokens) != 3:
        raise ValueError(f"Malformed timestamp: {value!r}")

    year = _parse_number(date_tokens[0], "year", value)
    month = _parse_number(date_tokens[1], "month", value)
    day = _parse_number(date_tokens[2], "day", value)
    hours = _parse_number(time_tokens[0], "hour", value)
    minutes = _parse_number(time_tokens[1], "minute", value)

    # Seconds are the first two digits, anything after is fraction or "Z"
    seconds_str = time_tokens[2][:2]
    rest = time_tokens[2][2:-1]
    if rest and not (rest[0] == "." and rest[1:].isdigit()):
        raise ValueError(f"Malformed seconds in timestamp: {value!r}")
    seconds = _parse_number(seconds_str, "second", value)

    if year < 1970:
        raise ValueError(f"Timestamp before the epoch: {value!r}")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in timestamp: {value!r}")
    if not 1 <= day <= days_in_month(month, year):
        raise ValueError(f"Invalid day in timestamp: {value!r}")
    if hours > 23 or minutes > 59 or seconds > 60:
        raise ValueError(f"Invalid time of day in timestamp: {value!r}")

    days_since_epoch = 0
    for y in range(1970, year):
        days_since_epoch += days_in_year(y)
    for m in range(1, month):
        days_since_epoch += days_in_month(m, year)
    days_since_epoch += day - 1

    return days_since_epoch * 86400 + hours * 3600 + minutes * 60 + seconds


def format_timestamp(timestamp: int) -> str:
    """Format a Unix timestamp for display, or "never" for zero."""
    if not timestamp:
        return "never"
    return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(timestamp))


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
