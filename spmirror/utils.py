"""Utility functions for spmirror."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

# =============================================================================
# Constants for sync operations
# =============================================================================

# Items requested per page from the list items endpoint
DEFAULT_PAGE_SIZE: int = 500

# Retry configuration for transient download errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 2.0  # seconds

# Error rate (in percent of listed files) below which a run has "minor issues"
MINOR_ISSUES_PERCENT: int = 5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Fractional seconds of an ISO timestamp, up to the offset
_FRACTION_RE = re.compile(r"\.(\d+)")


# =============================================================================
# Timestamp utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO format timestamp from the SharePoint REST API.

    Timestamps without an offset are taken to be UTC, which is what the
    ``Modified`` field of list items carries.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2025-01-15T10:30:00Z")

    Returns:
        Timezone-aware datetime in the local timezone or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"

        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Older interpreters only accept 3 or 6 fractional digits
            normalized = _FRACTION_RE.sub(
                lambda m: "." + m.group(1)[:6].ljust(6, "0"), timestamp_str, count=1
            )
            if normalized == timestamp_str:
                raise
            dt = datetime.fromisoformat(normalized)

        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return to_local_time(dt)
    except (ValueError, AttributeError):
        return None


def to_local_time(dt: datetime) -> datetime:
    """Convert an aware datetime to the host's local timezone.

    Naive datetimes are assumed to already be in local time.
    """
    return dt.astimezone()


def datetime_to_ns(dt: datetime) -> int:
    """Convert a datetime to integer nanoseconds since the Unix epoch.

    Integer arithmetic keeps microsecond values exact, so a timestamp written
    with ``os.utime(ns=...)`` reads back equal to ``dt``.
    """
    if dt.tzinfo is None:
        dt = dt.astimezone()
    delta = dt - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return seconds * 1_000_000_000 + delta.microseconds * 1000


def ns_to_local_datetime(ns: int) -> datetime:
    """Convert nanoseconds since the epoch to an aware local datetime.

    Sub-microsecond precision is truncated.
    """
    return (_EPOCH + timedelta(microseconds=ns // 1000)).astimezone()


# =============================================================================
# Formatting utilities
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


def format_duration(seconds: float) -> str:
    """Format a duration as ``HH:MM:SS``.

    Examples:
        >>> format_duration(3725)
        '01:02:05'
        >>> format_duration(0.4)
        '00:00:00'
    """
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format a datetime for display in local time."""
    if dt is None:
        return "-"
    return to_local_time(dt).strftime("%Y-%m-%d %H:%M:%S")
