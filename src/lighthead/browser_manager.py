
import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Download,
    Page,
    Request,
    Response,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from lighthead.errors import NavigationAbortedError, NavigationError
from lighthead.models import UNKNOWN_LOCATION, DownloadedFile, RedirectRecord, SessionConfig

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
VIEWPORT = {"width": 1920, "height": 1080}

BASE_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=VizDisplayCompositor",
    "--window-size=1920,1080",
    "--start-maximized",
]

STEALTH_LAUNCH_ARGS = [
    "--disable-web-security",
    "--disable-features=TranslateUI",
    "--disable-ipc-flooding-protection",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-default-apps",
    "--disable-popup-blocking",
    "--disable-prompt-on-repost",
    "--disable-hang-monitor",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--force-fieldtrials=*BackgroundTracing/default/",
]

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
    "Upgrade-Insecure-Requests": "1",
}

CLIENT_HINT_HEADERS = {
    "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
}

STEALTH_SCRIPT = """
    () => {
        Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
        Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
        window.chrome = { runtime: {} };
        Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
        const originalQuery = window.navigator.permissions.query;
        window.navigator.permissions.query = (parameters) => (
            parameters.name === 'notifications' ?
                Promise.resolve({ state: Notification.permission }) :
                originalQuery(parameters)
        );
        delete Object.getPrototypeOf(navigator).webdriver;
    }
"""

# Substrings Chromium and Firefox use when a navigation turns into a download.
ABORT_MARKERS = ("net::ERR_ABORTED", "Download is starting", "NS_BINDING_ABORTED")


def launch_args(stealth: bool) -> List[str]:
    args = list(BASE_LAUNCH_ARGS)
    if stealth:
        args.extend(STEALTH_LAUNCH_ARGS)
    return args


def context_options() -> Dict[str, Any]:
    """Options for a fresh, isolated desktop browser context."""
    return {
        "user_agent": USER_AGENT,
        "viewport": dict(VIEWPORT),
        "screen": dict(VIEWPORT),
        "device_scale_factor": 1,
        "is_mobile": False,
        "has_touch": False,
        "ignore_https_errors": True,
        "accept_downloads": True,
        "locale": "en-US",
        "timezone_id": "America/New_York",
        "permissions": ["geolocation"],
        "extra_http_headers": dict(DEFAULT_HEADERS),
    }


def is_abort_error(e: Exception) -> bool:
    """Determines if the exception means the navigation was aborted rather than failed."""
    msg = str(e)
    return any(marker in msg for marker in ABORT_MARKERS)


class BrowserSession:
    """
    One isolated Chromium context and page, used for a single fetch.

    Use it as an async context manager: the browser process is started on
    entry and always closed on exit. Redirects are recorded as they happen and
    downloads are delivered through a future that the caller can await with a
    timeout.
    """
    def __init__(self, config: SessionConfig, headless: bool = True):
        self.config = config
        self.headless = headless
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.redirects: List[RedirectRecord] = []
        self._download: Optional[asyncio.Future] = None

    async def __aenter__(self):
        try:
            await self.setup_browser()
        except BaseException:
            await self.close_browser()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_browser()

    def _trace(self, msg: str, *args) -> None:
        (logger.info if self.config.verbose else logger.debug)(msg, *args)

    async def setup_browser(self):
        """Launch Chromium and prepare a page with the desktop fingerprint."""
        self.playwright = await async_playwright().start()

        try:
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless,
                args=launch_args(self.config.stealth),
            )
        except PlaywrightError as e:
            if "Executable doesn't exist" in str(e) or "playwright install" in str(e):
                logger.error("Playwright browsers are not installed. Run 'playwright install chromium'.")
            raise NavigationError(f"Failed to launch browser: {e}") from e

        self.context = await self.browser.new_context(**context_options())
        if self.config.stealth:
            await self.context.add_init_script(STEALTH_SCRIPT)

        self.page = await self.context.new_page()
        if self.config.stealth:
            await self.page.set_extra_http_headers(CLIENT_HINT_HEADERS)

        self._download = asyncio.get_running_loop().create_future()
        self.page.on("response", self._on_response)
        self.page.on("download", self._on_download)
        if self.config.verbose:
            self.page.on("request", self._on_request)

    async def close_browser(self):
        """Close the page, context, browser and driver, ignoring errors from each."""
        if self._download is not None and not self._download.done():
            self._download.cancel()
        for name, closer in (
            ("context", self.context.close if self.context else None),
            ("browser", self.browser.close if self.browser else None),
            ("playwright", self.playwright.stop if self.playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.debug(f"Ignoring error while closing {name}: {e}")
        self.page = None
        self.context = None
        self.browser = None
        self.playwright = None

    # --- Event handlers ---

    def _on_request(self, request: Request):
        if not request.is_navigation_request():
            return
        self._trace("=== REQUEST DETAILS ===")
        self._trace("Method: %s", request.method)
        self._trace("URL: %s", request.url)
        self._trace("Headers: %s", request.headers)
        if request.post_data:
            self._trace("Body: %s", request.post_data)

    def _on_response(self, response: Response):
        status = response.status
        if not 300 <= status < 400:
            return
        request = response.request
        if not request.is_navigation_request() or request.frame != self.page.main_frame:
            return
        location = response.headers.get("location") or UNKNOWN_LOCATION
        self.redirects.append(RedirectRecord(source=response.url, target=location, status=status))
        self._trace("=== REDIRECT %d ===", len(self.redirects))
        self._trace("From: %s", response.url)
        self._trace("To: %s", location)
        self._trace("Status: %d %s", status, response.status_text)

    async def _on_download(self, download: Download):
        self._trace("Download started: %s", download.url)
        try:
            path = await download.path()
            buffer = Path(path).read_bytes() if path else b""
        except (PlaywrightError, OSError) as e:
            logger.warning(f"Download of {download.url} failed: {e}")
            return
        if self._download is not None and not self._download.done():
            self._download.set_result(DownloadedFile(
                buffer=buffer,
                suggested_filename=download.suggested_filename,
                url=download.url,
            ))
            self._trace("Download completed: %s (%d bytes)", download.suggested_filename, len(buffer))

    # --- Session operations ---

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> bool:
        """Seed the context's cookie jar. Returns False if the browser rejected them."""
        try:
            await self.context.add_cookies(cookies)
        except (PlaywrightError, TypeError, KeyError) as e:
            logger.warning(f"Failed to seed cookies: {e}")
            return False
        return True

    async def navigate(self, url: str, wait_until: str, timeout_ms: int) -> Optional[Response]:
        """Navigate the page, translating engine errors into NavigationError."""
        try:
            return await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Navigation to {url} timed out after {timeout_ms} ms") from e
        except PlaywrightError as e:
            if is_abort_error(e):
                raise NavigationAbortedError(f"Navigation to {url} was aborted: {e}") from e
            raise NavigationError(f"Navigation to {url} failed: {e}") from e

    async def wait_for_network_idle(self, timeout_ms: int) -> bool:
        """Returns False if the network was still busy when the timeout expired."""
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            raise NavigationError(f"Page failed while settling: {e}") from e
        return True

    async def wait_for_download(self, timeout: float) -> Optional[DownloadedFile]:
        """Return the captured download, waiting at most *timeout* seconds for it."""
        if self._download is None:
            return None
        if self._download.done():
            return None if self._download.cancelled() else self._download.result()
        if timeout <= 0:
            return None
        try:
            return await asyncio.wait_for(asyncio.shield(self._download), timeout)
        except asyncio.TimeoutError:
            return None

    async def humanize(self):
        """Move the pointer and scroll a little, like a person glancing at the page."""
        await self.page.mouse.move(random.random() * 100, random.random() * 100)
        try:
            await self.page.evaluate("() => window.scrollTo(0, Math.random() * 100)")
        except PlaywrightError as e:
            logger.debug(f"Scroll failed: {e}")

    async def content(self) -> str:
        return await self.page.content()

    async def text_content(self) -> str:
        return await self.page.text_content("body") or ""

    async def cookies(self) -> List[Dict[str, Any]]:
        return await self.context.cookies()


class PlaywrightBrowser:
    """Browser capability that hands out Playwright-backed sessions."""
    def __init__(self, headless: bool = True):
        self.headless = headless

    def launch(self, config: SessionConfig) -> BrowserSession:
        return BrowserSession(config, headless=self.headless)
