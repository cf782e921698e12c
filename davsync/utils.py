"""Utility functions for davsync."""

import posixpath
import re
from email.utils import parsedate_to_datetime
from typing import Optional, Union

# =============================================================================
# Constants for sync operations
# =============================================================================

# Buffer size for streaming file content (32 KB)
TRANSFER_BUFFER_SIZE: int = 32 * 1024

# Suffix of the temporary file a download is streamed into
DOWNLOAD_SUFFIX: str = ".download"

# Modification times closer than this are considered equal (seconds)
MTIME_TOLERANCE: float = 1.0

# Minimum interval between two throttled progress events (seconds)
PROGRESS_INTERVAL: float = 0.1

# Retry configuration for transfers
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 2.0  # seconds

DEFAULT_MAX_CONCURRENT: int = 5


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MiB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KiB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MiB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GiB"


def format_speed(bytes_per_second: float) -> str:
    """Format a transfer speed, e.g. "1.2 MiB/s"."""
    if bytes_per_second < 1024:
        return f"{bytes_per_second:.1f} B/s"
    return f"{format_size(int(bytes_per_second))}/s"


# =============================================================================
# Duration parsing
# =============================================================================

_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration into seconds.

    Numbers are taken as seconds. Strings may be plain numbers or
    combinations of ``<number><unit>`` with units ms, s, m and h.

    Args:
        value: Duration as number or string

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value cannot be parsed or is negative

    Examples:
        >>> parse_duration("2s")
        2.0
        >>> parse_duration("1m30s")
        90.0
        >>> parse_duration("500ms")
        0.5
        >>> parse_duration(3)
        3.0
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos == 0 or pos != len(text):
                raise ValueError(f"Invalid duration: {value!r}") from None
    if seconds < 0:
        raise ValueError(f"Duration must not be negative: {value!r}")
    return seconds


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_http_date(value: Optional[str]) -> Optional[float]:
    """Parse an RFC 1123 date (as used by ``getlastmodified``).

    Args:
        value: Date string, e.g. "Wed, 15 Jan 2025 10:30:00 GMT"

    Returns:
        Unix timestamp or None if the value is empty or malformed
    """
    if not value:
        return None
    try:
        return parsedate_to_datetime(value.strip()).timestamp()
    except (TypeError, ValueError, IndexError):
        return None


# =============================================================================
# Path utilities
# =============================================================================


def normalize_remote_path(path: str) -> str:
    """Normalize a remote path to an absolute, slash-separated form.

    Examples:
        >>> normalize_remote_path("docs/a.txt")
        '/docs/a.txt'
        >>> normalize_remote_path("/backup/")
        '/backup'
        >>> normalize_remote_path("")
        '/'
    """
    path = path.replace("\\", "/")
    return posixpath.normpath("/" + path.strip("/"))


def join_remote_path(root: str, relative_path: str) -> str:
    """Join a remote root and a relative path.

    Examples:
        >>> join_remote_path("/", "docs/a.txt")
        '/docs/a.txt'
        >>> join_remote_path("/backup", "docs")
        '/backup/docs'
        >>> join_remote_path("/backup", "")
        '/backup'
    """
    if not relative_path:
        return normalize_remote_path(root)
    return normalize_remote_path(f"{root.rstrip('/')}/{relative_path}")


def join_relative(parent: str, name: str) -> str:
    """Join a relative parent path and a child name with a forward slash."""
    return f"{parent}/{name}" if parent else name
