"""
Helper Utility Module

This module provides various helper functions used throughout the feed core.
"""

import random
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """
    Check if a URL is valid.

    Args:
        url: The URL to validate

    Returns:
        bool: True if the URL is valid, False otherwise
    """
    try:
        result = urlparse(url)
        return all([result.scheme, result.netloc])
    except Exception:
        return False


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_millis() -> int:
    """Return the current wall clock time in milliseconds."""
    return int(time.time() * 1000)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a Postgres/ISO-8601 timestamp into an aware datetime.

    Args:
        value: An ISO string (``Z`` suffix accepted), a datetime, or None.

    Returns:
        The parsed datetime in UTC when no offset is given, or None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def make_placeholder_id(prefix: str = "temp-") -> str:
    """
    Generate a locally unique id for a post the server has not acknowledged.

    Args:
        prefix: Marker prefix so placeholders are recognizable in logs.

    Returns:
        str: e.g. ``temp-3f2a...``
    """
    return f"{prefix}{uuid.uuid4().hex}"


def random_suffix(length: int = 7) -> str:
    """Return a short lowercase alphanumeric token."""
    alphabet = string.ascii_lowercase + string.digits
    return ''.join(random.choice(alphabet) for _ in range(length))


def file_extension(filename: str, default: str = "jpg") -> str:
    """
    Get the extension of a filename without the dot.

    Args:
        filename: The original file name, e.g. ``photo.PNG``
        default: Returned when the name has no extension

    Returns:
        str: Lowercased extension
    """
    if not filename or '.' not in filename:
        return default
    ext = filename.rsplit('.', 1)[-1].strip().lower()
    return ext or default


def build_post_image_path(user_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Build the storage object path for a post image.

    Layout: ``posts/<user_id>/post_<ms>_<random>.<ext>``

    Args:
        user_id: Owner of the image
        filename: Original file name, used only for its extension
        timestamp_ms: Upload timestamp, defaults to now

    Returns:
        str: The object path inside the post images bucket
    """
    ts = timestamp_ms if timestamp_ms is not None else now_millis()
    return f"posts/{user_id}/post_{ts}_{random_suffix()}.{file_extension(filename)}"


def clamp_count(value: int) -> int:
    """Counters are never negative."""
    return value if value > 0 else 0


def content_signature(user_id: Optional[str], content: Optional[str],
                      image_url: Optional[str] = None) -> tuple:
    """
    Identity of a post by what it shows: author, trimmed text and image.

    Used to match a provisional post against its own row arriving through
    the change feed before the dispatcher has confirmed it.
    """
    return (user_id or "", (content or "").strip(), image_url or "")


def safe_get(data: Dict[str, Any], *keys, default: Any = None) -> Any:
    """
    Safely get a value from a nested dictionary.

    Args:
        data: The dictionary to search
        *keys: The keys to follow
        default: Default value if key doesn't exist

    Returns:
        The value at the specified keys or the default value
    """
    for key in keys:
        try:
            data = data[key]
        except (KeyError, TypeError, IndexError):
            return default
    return data
