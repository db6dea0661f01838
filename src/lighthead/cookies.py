"""Load and save browser cookies as a JSON array.

Both directions are best effort: a missing or malformed file never stops a
fetch, and a failed write is only logged.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


def load_cookies(path: str | Path, verbose: bool = False) -> List[Dict[str, Any]]:
    """Return the cookies stored at *path*, or an empty list."""
    log = logger.info if verbose else logger.debug
    cookie_path = Path(path)
    if not cookie_path.is_file():
        log(f"Cookie file {cookie_path} does not exist, starting with an empty jar")
        return []

    try:
        with open(cookie_path, 'r', encoding='utf-8') as f:
            cookies = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        log(f"Failed to load cookies from {cookie_path}: {e}")
        return []

    if not isinstance(cookies, list):
        log(f"Cookie file {cookie_path} does not hold a JSON array, ignoring it")
        return []

    cookies = [c for c in cookies if isinstance(c, dict)]
    log(f"Loaded {len(cookies)} cookies from {cookie_path}")
    return cookies


def save_cookies(path: str | Path, cookies: List[Dict[str, Any]], verbose: bool = False) -> bool:
    """Overwrite *path* with *cookies*. Returns False if the write failed."""
    log = logger.info if verbose else logger.debug
    cookie_path = Path(path)
    try:
        # Serialize first so a bad cookie cannot truncate the existing file.
        data = json.dumps(list(cookies), ensure_ascii=False, indent=2)
        with open(cookie_path, 'w', encoding='utf-8') as f:
            f.write(data)
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Failed to save cookies to {cookie_path}: {e}")
        return False
    log(f"Saved {len(cookies)} cookies to {cookie_path}")
    return True
