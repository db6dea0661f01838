"""Pre-flight validation of URLs and options.

Nothing here touches the network; every function either returns the
normalized value or raises a :class:`~lighthead.errors.ValidationError`.
"""

from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlsplit

from lighthead.errors import (
    InvalidBooleanError,
    InvalidFormatError,
    InvalidRangeError,
    InvalidUrlError,
    UnsupportedProtocolError,
)

CLI_FORMATS = ("html", "markdown", "md", "text", "txt")
SERVER_FORMATS = CLI_FORMATS + ("binary",)

MIN_REDIRECTS = 0
MAX_REDIRECTS = 100

# Optional sign followed by leading digits; anything after them is ignored.
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


def validate_url(url: str) -> str:
    """Check that *url* is an absolute http(s) URL and return it unchanged."""
    if not isinstance(url, str) or not _SCHEME.match(url.strip()):
        raise InvalidUrlError("Invalid URL format")
    try:
        parts = urlsplit(url.strip())
        # Accessing .port validates the authority part as well.
        parts.port
    except ValueError as e:
        raise InvalidUrlError("Invalid URL format") from e

    if parts.scheme.lower() not in ("http", "https"):
        raise UnsupportedProtocolError("URL must use HTTP or HTTPS protocol")
    if not parts.hostname:
        raise InvalidUrlError("Invalid URL format")
    return url


def validate_format(fmt: str, allowed: Iterable[str] = CLI_FORMATS) -> str:
    """Return the lower-cased format, or raise if it is not one of *allowed*."""
    allowed = tuple(allowed)
    if not isinstance(fmt, str) or fmt.lower() not in allowed:
        raise InvalidFormatError(
            f"Invalid format: {fmt}. Valid formats are: {', '.join(allowed)}"
        )
    return fmt.lower()


def parse_leading_int(value: str) -> int | None:
    """Parse like JavaScript's ``parseInt``: ``"12.5"`` gives 12, ``"abc"`` gives None."""
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def validate_max_redirects(value: str, name: str = "max-redirects") -> int:
    """Parse *value* and check it lies in [0, 100]."""
    num = parse_leading_int(value)
    if num is None or num < MIN_REDIRECTS or num > MAX_REDIRECTS:
        raise InvalidRangeError(
            f"{name} must be a number between {MIN_REDIRECTS} and {MAX_REDIRECTS}"
        )
    return num


def validate_boolean(value: str, name: str) -> bool:
    """Accept only the literal strings 'true' and 'false'."""
    if value not in ("true", "false"):
        raise InvalidBooleanError(f"{name} must be 'true' or 'false'")
    return value == "true"
