"""
Helper Utility Module

This module provides various helper functions used throughout the feed client.
"""

import mimetypes
from datetime import datetime, timezone
from typing import Optional, Any

from config import settings


def utf16_length(text: str) -> int:
    """
    Count UTF-16 code units, the unit the post length limit is expressed in.

    Characters outside the Basic Multilingual Plane (most emoji) count as two.

    Args:
        text: The text to measure

    Returns:
        int: Number of UTF-16 code units
    """
    return len(text.encode("utf-16-le")) // 2


def blob_path(author_id: str, post_id: str) -> str:
    """
    Build the blob store path of a post's attachment.

    Args:
        author_id: The id of the post's author
        post_id: The id assigned to the post by the document store

    Returns:
        str: Path of the form ``tweets/{author_id}/{post_id}``
    """
    return f"{settings.BLOB_ROOT}/{author_id}/{post_id}"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert a stored timestamp into an aware datetime.

    Accepts datetimes (naive ones are taken as UTC), RFC 3339 strings such as
    Firestore's ``timestampValue`` and epoch milliseconds.

    Args:
        value: The raw timestamp

    Returns:
        Optional[datetime]: The parsed timestamp, or None if it cannot be parsed
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            # NaN, infinity, or outside the platform's time_t range
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # fromisoformat only takes up to microseconds
        if "." in text:
            head, _, tail = text.partition(".")
            digits = ""
            for ch in tail:
                if not ch.isdigit():
                    break
                digits += ch
            text = head + "." + digits[:6].ljust(6, "0") + tail[len(digits):]
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def format_timestamp(value: datetime) -> str:
    """
    Format a datetime as an RFC 3339 UTC string with a ``Z`` suffix.

    Args:
        value: The datetime to format

    Returns:
        str: e.g. ``2024-01-15T10:00:00.123456Z``
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def guess_content_type(filename: str, default: str = "application/octet-stream") -> str:
    """
    Guess the MIME type of a file from its name.

    Args:
        filename: The file name or path
        default: Returned when the extension is unknown

    Returns:
        str: The guessed MIME type
    """
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or default
