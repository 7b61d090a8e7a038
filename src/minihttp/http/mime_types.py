"""
=============================================================================
SERVABLE FILE TYPES
=============================================================================

The file server only serves a fixed set of extensions. Anything outside
this table is refused with 400 before the filesystem is touched, so the
table doubles as an allow-list.

Lookups are case-sensitive: ".HTML" is not ".html" and is refused.

=============================================================================
"""

from pathlib import PurePosixPath
from typing import Optional


MIME_TYPES = {
    ".html": "text/html",
    ".txt": "text/plain",
    ".gif": "image/gif",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".css": "text/css",
}


def get_extension(path: str) -> str:
    """Return the extension of a URL or file path, case preserved ("" if none)."""
    return PurePosixPath(path).suffix


def get_content_type(path: str) -> Optional[str]:
    """
    Get the Content-Type for a path, or None if the type is not servable.

    Examples:
        >>> get_content_type("/index.html")
        'text/html'
        >>> get_content_type("/archive.zip") is None
        True
    """
    return MIME_TYPES.get(get_extension(path))
