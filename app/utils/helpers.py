"""
Common utility functions and helpers.
"""
from typing import Optional
import re
import time

_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9._-]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")


def sanitize_filename(filename: str) -> str:
    """
    Make a filename safe for use in an object-store path.

    Args:
        filename: Original client filename

    Returns:
        Filename containing only letters, digits, '.', '_' and '-'
    """
    cleaned = _UNSAFE_FILENAME_RE.sub("_", filename)
    cleaned = _UNDERSCORE_RUN_RE.sub("_", cleaned)
    cleaned = cleaned.strip("_")
    return cleaned or "document.pdf"


def build_storage_path(owner_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    """
    Object-store key for an upload: ``{owner_id}/{epoch_ms}-{sanitized}``.

    Args:
        owner_id: Owning user id
        filename: Original client filename
        now_ms: Timestamp override in milliseconds

    Returns:
        Storage path
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{owner_id}/{now_ms}-{sanitize_filename(filename)}"


def count_words(text: str) -> int:
    """Number of whitespace-separated words in *text*."""
    return len(text.split())


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
