"""Utility helper functions"""

from datetime import datetime, timezone
from typing import Any, Optional


def escape_xml(value: Any) -> str:
    """
    Escape text for safe embedding in SVG/HTML markup

    Args:
        value: Any value, converted with str()

    Returns:
        Escaped string
    """
    return (
        str(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def format_number(value: Optional[int]) -> str:
    """
    Format integer with thousands separators

    Args:
        value: Number to format, None renders as a dash

    Returns:
        Formatted string (e.g., "12,345")
    """
    if value is None:
        return "—"
    return f"{value:,}"


def parse_datetime(raw: Any) -> Optional[datetime]:
    """
    Parse ISO 8601 timestamp (GitHub "Z" suffix supported) into aware UTC datetime

    Args:
        raw: Timestamp string

    Returns:
        Datetime in UTC or None if unparseable
    """
    if not isinstance(raw, str) or not raw.strip():
        return None

    text = raw.strip().replace("Z", "+00:00")
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso8601(value: datetime) -> str:
    """Format datetime as GitHub-style UTC timestamp (2024-01-01T00:00:00Z)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now() -> datetime:
    """Current time as aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """
    Parse query-string style boolean

    Args:
        value: Raw value ("true", "1", "yes", ...)
        default: Value used when missing

    Returns:
        Parsed boolean
    """
    if value is None:
        return default
    return value.strip().lower() in {"true", "1", "yes"}


def parse_non_negative_int(value: Optional[str], default: int) -> int:
    """
    Parse query-string style non-negative integer

    Args:
        value: Raw value
        default: Value used when missing or invalid

    Returns:
        Parsed integer
    """
    if value is None:
        return default
    try:
        number = int(value.strip())
    except (ValueError, AttributeError):
        return default
    return number if number >= 0 else default
