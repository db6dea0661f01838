"""Settings for the Lighthead HTTP service.

Values come from environment variables, with a `.env` file in the working
directory loaded first. Only the service reads these; the fetch pipeline is
configured per request through ScrapeOptions.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path.cwd() / ".env", override=False)

DEFAULT_PORT = 3005
DEFAULT_HOST = "0.0.0.0"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() == "true"


def _env_port() -> int:
    raw = os.environ.get("PORT", "").strip()
    try:
        return int(raw) if raw else DEFAULT_PORT
    except ValueError:
        return DEFAULT_PORT


@dataclass
class Settings:
    port: int = field(default_factory=_env_port)
    host: str = field(default_factory=lambda: os.environ.get("HOST") or DEFAULT_HOST)
    # When unset, /scrape is open to everyone.
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("API_KEY") or None)
    verbose: bool = field(default_factory=lambda: _env_flag("VERBOSE"))
