"""
Content-Type detection utilities.
Sniff MIME types from leading file bytes, or guess them from file extensions.
"""

import mimetypes
import re
from typing import Optional

import filetype

DEFAULT_MIME_TYPE = "application/octet-stream"
SVG_MIME_TYPE = "image/svg+xml"

# XML prolog, comments and an optional doctype may precede the <svg> root
_SVG_PATTERN = re.compile(
    r"^\s*(?:<\?xml[^>]*>\s*)?"
    r"(?:<!--.*?-->\s*)*"
    r"(?:<!doctype\s+svg[^>]*>\s*)?"
    r"(?:<!--.*?-->\s*)*"
    r"<svg[\s>]",
    re.IGNORECASE | re.DOTALL,
)


def is_svg(data: bytes) -> bool:
    """Check whether a chunk of bytes starts an SVG document."""
    if not data:
        return False
    text = bytes(data).decode("utf-8-sig", errors="ignore")
    return _SVG_PATTERN.match(text) is not None


def detect_content_type(chunk: Optional[bytes]) -> str:
    """
    Detect Content-Type from the first bytes of a file.

    Binary signatures win, then the SVG text signature, then
    'application/octet-stream' as last resort.

    Args:
        chunk: Leading bytes of the file (None or b"" for an empty file)

    Returns:
        MIME type string (e.g., "image/png", "image/svg+xml")

    Examples:
        >>> detect_content_type(b"\\x89PNG\\r\\n\\x1a\\n...")
        'image/png'

        >>> detect_content_type(b'<svg xmlns="http://www.w3.org/2000/svg"></svg>')
        'image/svg+xml'

        >>> detect_content_type(b"plain bytes")
        'application/octet-stream'
    """
    if not chunk:
        return DEFAULT_MIME_TYPE

    kind = filetype.guess(bytes(chunk))
    if kind is not None:
        return kind.mime

    if is_svg(chunk):
        return SVG_MIME_TYPE

    return DEFAULT_MIME_TYPE


def guess_content_type(filename: Optional[str], provided_type: Optional[str] = None) -> str:
    """
    Guess Content-Type from a filename extension.

    A specific client-provided type is respected; a generic one only wins
    when the extension is unknown.

    Args:
        filename: Filename or path (e.g., "document.pdf")
        provided_type: Optional Content-Type declared by the client

    Returns:
        MIME type string
    """
    if provided_type and provided_type != DEFAULT_MIME_TYPE:
        return provided_type

    guessed_type = None
    if filename:
        guessed_type, _ = mimetypes.guess_type(filename)

    # Priority: guessed > provided > fallback
    return guessed_type or provided_type or DEFAULT_MIME_TYPE
