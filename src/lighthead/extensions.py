"""File extension lookup for binary payloads."""

from __future__ import annotations

import posixpath
from urllib.parse import unquote, urlsplit

DEFAULT_EXTENSION = ".bin"

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
    "application/zip": ".zip",
    "text/plain": ".txt",
    "application/json": ".json",
}


def _url_extension(url: str) -> str:
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    last_segment = posixpath.basename(unquote(path))
    _, ext = posixpath.splitext(last_segment)
    # A bare trailing dot ("file.") carries no extension.
    return ext.lower() if len(ext) > 1 else ""


def resolve_extension(url: str, content_type: str) -> str:
    """
    Pick a file extension for a payload fetched from *url*.

    The URL path extension always wins, even when it contradicts the
    content-type. Otherwise the media type (parameters such as charset are
    ignored) is looked up in MIME_EXTENSIONS, falling back to ``.bin``.
    """
    ext = _url_extension(url or "")
    if ext:
        return ext
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(media_type, DEFAULT_EXTENSION)
