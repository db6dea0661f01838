"""Data models for the fetch pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple, Union

# Used as the redirect target when a 3xx response carries no Location header.
UNKNOWN_LOCATION = "unknown"


@dataclass(frozen=True)
class ScrapeOptions:
    """Per-request configuration."""

    verbose: bool = False
    follow_redirects: bool = True
    cookie_file: Optional[str] = None
    max_redirects: int = 10
    stealth: bool = True


@dataclass(frozen=True)
class RedirectRecord:
    """One 3xx hop observed during navigation."""

    source: str
    target: str
    status: int


@dataclass(frozen=True)
class ResponseMetadata:
    """Status line and headers of the final response."""

    status: int
    status_text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_headers(cls, status: int, status_text: str, headers: Dict[str, str]) -> "ResponseMetadata":
        return cls(
            status=status,
            status_text=status_text,
            headers={k.lower(): v for k, v in (headers or {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "statusText": self.status_text, "headers": dict(self.headers)}


@dataclass(frozen=True)
class HtmlResult:
    """A page that was served as HTML."""

    html: str
    text: str
    markdown: str
    url: str
    final_url: str
    redirect_chain: Tuple[RedirectRecord, ...]
    response: ResponseMetadata
    type: Literal["html"] = "html"


@dataclass(frozen=True)
class BinaryResult:
    """A non-HTML payload, or a file the browser downloaded."""

    buffer: bytes
    filename: str
    content_type: str
    url: str
    final_url: str
    redirect_chain: Tuple[RedirectRecord, ...]
    response: ResponseMetadata
    type: Literal["binary"] = "binary"


ScrapeResult = Union[HtmlResult, BinaryResult]


@dataclass(frozen=True)
class DownloadedFile:
    """Bytes captured from a browser download event."""

    buffer: bytes
    suggested_filename: str
    url: str


@dataclass(frozen=True)
class SessionConfig:
    """What a browser capability needs to launch one isolated session."""

    stealth: bool = True
    verbose: bool = False
