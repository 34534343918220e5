"""Utility functions for pybtrsync."""

import re
from datetime import datetime
from pathlib import Path
from typing import Union

# =============================================================================
# Constants for snapshot transfers
# =============================================================================

# Size of one staged upload chunk (100 MB)
DEFAULT_CHUNK_SIZE: int = 100 * 1024 * 1024

# Number of filled chunks allowed to wait for upload
DEFAULT_QUEUE_CAPACITY: int = 10

# Name of the staging directory below the remote root
STAGING_DIR_NAME: str = ".tmp"

# Default SSH port when the remote spec does not name one
DEFAULT_SSH_PORT: int = 22


# =============================================================================
# Timestamp utilities
# =============================================================================


_RFC3339_RE = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})[Tt ]"
    r"(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})",
    re.ASCII,
)


def parse_timestamp(name: str) -> datetime:
    """Parse an RFC 3339 snapshot name into a timezone-aware datetime.

    Only the RFC 3339 profile is accepted: full date, full time with an
    optional fraction, and a ``Z`` or ``+HH:MM`` offset. Other ISO 8601
    forms (week dates, basic format, reduced precision) and surrounding
    whitespace are rejected.

    Args:
        name: Snapshot name (e.g., "2021-03-04T05:06:07+00:00" or
            "2021-03-04T05:06:07Z")

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the name is not an RFC 3339 date-time
    """
    match = _RFC3339_RE.fullmatch(name)
    if match is None:
        raise ValueError(f"Not an RFC 3339 timestamp: {name!r}")

    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"

    # fromisoformat only takes 3 or 6 fraction digits before Python 3.11
    fraction = match.group("fraction")
    fraction = f".{fraction[:6].ljust(6, '0')}" if fraction else ""

    return datetime.fromisoformat(
        f"{match.group('date')}T{match.group('time')}{fraction}{offset}"
    )


def format_timestamp(timestamp: datetime) -> str:
    """Format a timestamp in canonical RFC 3339 form."""
    return timestamp.isoformat()


# =============================================================================
# Formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format a byte count in human-readable format.

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
    """Format an elapsed time as hours, minutes and seconds.

    Zero-valued leading units are omitted.

    Examples:
        >>> format_duration(5.5)
        '5.50s'
        >>> format_duration(65)
        '1m 5.00s'
        >>> format_duration(3605)
        '1h 5.00s'
        >>> format_duration(3665.25)
        '1h 1m 5.25s'
    """
    secs = seconds % 60
    minutes = int(seconds) // 60 % 60
    hours = int(seconds) // 3600

    if hours == 0 and minutes == 0:
        return f"{secs:.2f}s"
    if hours == 0:
        return f"{minutes}m {secs:.2f}s"
    if minutes == 0:
        return f"{hours}h {secs:.2f}s"
    return f"{hours}h {minutes}m {secs:.2f}s"


# =============================================================================
# Path utilities
# =============================================================================


def path_as_utf8(path: Union[str, Path]) -> str:
    """Return a path as text, refusing names that are not valid UTF-8.

    Undecodable bytes in file names surface in Python as lone surrogates;
    such paths cannot be passed to a remote shell verbatim.

    Raises:
        ValueError: If the path is not valid UTF-8
    """
    text = str(path)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"Path is not valid UTF-8: {text!r}") from e
    return text
