"""
Browser-driven fetch pipeline.

:class:`Scraper` drives one browser session per request: launch, seed
cookies, navigate, let the page settle, then classify the response as HTML
(converted to text and Markdown) or binary (named with a file extension).
The session is closed on every exit path, including errors and
cancellation. Nothing is retried here.

The browser itself is injected. Anything with a ``launch(SessionConfig)``
method returning an async context manager that behaves like
:class:`~lighthead.browser_manager.BrowserSession` can be used, which is how
the tests run the pipeline without Chromium.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import random
import time
from typing import Dict, Optional, Tuple

from lighthead.browser_manager import DEFAULT_HEADERS, USER_AGENT, VIEWPORT, PlaywrightBrowser
from lighthead.cookies import load_cookies, save_cookies
from lighthead.errors import InvalidRangeError, NavigationAbortedError, NavigationError
from lighthead.extensions import resolve_extension
from lighthead.markdown import to_markdown
from lighthead.models import (
    BinaryResult,
    DownloadedFile,
    HtmlResult,
    ResponseMetadata,
    ScrapeOptions,
    ScrapeResult,
    SessionConfig,
)
from lighthead.validation import MAX_REDIRECTS, MIN_REDIRECTS, validate_url

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 60_000
NETWORK_IDLE_TIMEOUT_MS = 15_000
# How long an aborted navigation may wait for its download to land.
DOWNLOAD_GRACE_SECONDS = 3.0
# Extra wait for a trailing download after a PDF-like URL committed.
PDF_DOWNLOAD_GRACE_SECONDS = 1.0
HUMAN_PAUSE_RANGE = (1.0, 3.0)

DOWNLOAD_CONTENT_TYPE = "application/pdf"


class SyntheticResponse:
    """Stands in for the real response when the navigation became a download."""

    def __init__(self, url: str, buffer: bytes, content_type: str = DOWNLOAD_CONTENT_TYPE):
        self.url = url
        self.status = 200
        self.status_text = "OK"
        self.headers = {"content-type": content_type, "content-length": str(len(buffer))}
        self._buffer = buffer

    async def body(self) -> bytes:
        return self._buffer

    async def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")


def is_pdf_like(url: str) -> bool:
    return ".pdf" in url.lower()


def _timestamped_filename(extension: str) -> str:
    return f"download_{int(time.time() * 1000)}{extension}"


class Scraper:
    """Fetches one URL per :meth:`scrape` call through a fresh browser session."""

    def __init__(self, options: Optional[ScrapeOptions] = None, browser=None):
        self.options = options or ScrapeOptions()
        self.browser = browser or PlaywrightBrowser()

    def _trace(self, msg: str, *args) -> None:
        (logger.info if self.options.verbose else logger.debug)(msg, *args)

    def _validate_options(self) -> None:
        max_redirects = self.options.max_redirects
        if (isinstance(max_redirects, bool) or not isinstance(max_redirects, int)
                or not MIN_REDIRECTS <= max_redirects <= MAX_REDIRECTS):
            raise InvalidRangeError(
                f"maxRedirects must be a number between {MIN_REDIRECTS} and {MAX_REDIRECTS}"
            )

    def _wait_strategy(self, url: str) -> str:
        # 'commit' returns as soon as the response starts, which keeps PDF
        # navigations from waiting on a document that will never render.
        if not self.options.follow_redirects or is_pdf_like(url):
            return "commit"
        return "domcontentloaded"

    async def scrape(self, url: str) -> ScrapeResult:
        """
        Fetch *url* and return an HtmlResult or a BinaryResult.

        Raises:
            ValidationError: If the URL or options are invalid. No browser is launched.
            NavigationError: If the page could not be loaded.
        """
        validate_url(url)
        self._validate_options()

        cookies = []
        if self.options.cookie_file:
            cookies = load_cookies(self.options.cookie_file, verbose=self.options.verbose)

        self._trace("=== BROWSER LAUNCH ===")
        self._trace("Launching headless Chromium (stealth: %s)", self.options.stealth)
        config = SessionConfig(stealth=self.options.stealth, verbose=self.options.verbose)

        async with self.browser.launch(config) as session:
            if cookies and not await session.add_cookies(cookies):
                logger.warning("Continuing with an empty cookie jar.")

            response, download = await self._navigate(session, url)
            if download is None:
                await self._settle(session, url)
                grace = PDF_DOWNLOAD_GRACE_SECONDS if is_pdf_like(url) else 0
                download = await session.wait_for_download(grace)
                if download is not None and not download.buffer:
                    download = None

            self._log_redirects(session, response)
            result = await self._classify(session, url, response, download)

            if self.options.cookie_file:
                await self._persist_cookies(session)
            return result

    async def _navigate(self, session, url: str) -> Tuple[object, Optional[DownloadedFile]]:
        wait_until = self._wait_strategy(url)
        self._trace("=== HTTP REQUEST ===")
        self._trace("URL: %s", url)
        self._trace("Method: GET")
        self._trace("User-Agent: %s", USER_AGENT)
        self._trace("Viewport: %dx%d", VIEWPORT["width"], VIEWPORT["height"])
        self._trace("Wait until: %s", wait_until)
        for key, value in DEFAULT_HEADERS.items():
            self._trace("  %s: %s", key, value)

        try:
            response = await session.navigate(url, wait_until=wait_until, timeout_ms=NAVIGATION_TIMEOUT_MS)
        except NavigationAbortedError:
            self._trace("Navigation aborted, waiting up to %.0f s for a download", DOWNLOAD_GRACE_SECONDS)
            download = await session.wait_for_download(DOWNLOAD_GRACE_SECONDS)
            if download is None or not download.buffer:
                raise
            self._trace("Navigation aborted by download of %s", download.suggested_filename)
            return SyntheticResponse(url, download.buffer), download

        if response is None:
            raise NavigationError(f"Failed to load page: {url}")
        return response, None

    async def _settle(self, session, url: str) -> None:
        if self._wait_strategy(url) != "commit":
            if not await session.wait_for_network_idle(NETWORK_IDLE_TIMEOUT_MS):
                self._trace("Network still busy after %d ms, using the content loaded so far", NETWORK_IDLE_TIMEOUT_MS)

        if self.options.stealth:
            await asyncio.sleep(random.uniform(*HUMAN_PAUSE_RANGE))
            await session.humanize()

    def _log_redirects(self, session, response) -> None:
        if not session.redirects:
            return
        self._trace("=== REDIRECT SUMMARY ===")
        self._trace("Total redirects: %d", len(session.redirects))
        for i, redirect in enumerate(session.redirects, start=1):
            self._trace("%d. %d %s -> %s", i, redirect.status, redirect.source, redirect.target)
        self._trace("Final URL: %s", response.url)

    async def _classify(self, session, url: str, response, download: Optional[DownloadedFile]) -> ScrapeResult:
        metadata = ResponseMetadata.from_headers(response.status, response.status_text, response.headers)
        redirect_chain = tuple(session.redirects)
        final_url = response.url
        content_type = metadata.headers.get("content-type", "")

        self._trace("=== RESPONSE ANALYSIS ===")
        self._trace("Status: %d %s", metadata.status, metadata.status_text)
        self._trace("Content-Type: %s", content_type)
        self._trace("Content-Length: %s", metadata.headers.get("content-length", "unknown"))

        if download is not None:
            self._trace("=== DOWNLOAD COMPLETED ===")
            self._trace("Downloaded file: %s (%d bytes)", download.suggested_filename, len(download.buffer))
            return BinaryResult(
                buffer=download.buffer,
                filename=download.suggested_filename or _timestamped_filename(".pdf"),
                content_type=self._download_content_type(download, metadata.headers),
                url=url,
                final_url=final_url,
                redirect_chain=redirect_chain,
                response=metadata,
            )

        if "text/html" in content_type.lower():
            html = await self._document_markup(session, response)
            text = await session.text_content()
            markdown = to_markdown(html, final_url)
            self._trace("HTML size: %d characters", len(html))
            self._trace("Text content size: %d characters", len(text))
            self._trace("Markdown size: %d characters", len(markdown))
            return HtmlResult(
                html=html,
                text=text,
                markdown=markdown,
                url=url,
                final_url=final_url,
                redirect_chain=redirect_chain,
                response=metadata,
            )

        buffer = await response.body()
        filename = _timestamped_filename(resolve_extension(url, content_type))
        self._trace("Binary size: %d bytes", len(buffer))
        self._trace("Suggested filename: %s", filename)
        return BinaryResult(
            buffer=buffer,
            filename=filename,
            content_type=content_type,
            url=url,
            final_url=final_url,
            redirect_chain=redirect_chain,
            response=metadata,
        )

    async def _document_markup(self, session, response) -> str:
        """Prefer the markup as served; fall back to the live DOM."""
        try:
            return await response.text()
        except Exception as e:
            self._trace("Response body unavailable (%s), serializing the live DOM instead", e)
            return await session.content()

    @staticmethod
    def _download_content_type(download: DownloadedFile, headers: Dict[str, str]) -> str:
        header = headers.get("content-type", "")
        if header and "text/html" not in header.lower():
            return header
        guessed, _ = mimetypes.guess_type(download.suggested_filename or "")
        return guessed or DOWNLOAD_CONTENT_TYPE

    async def _persist_cookies(self, session) -> None:
        try:
            cookies = await session.cookies()
        except Exception as e:
            logger.warning(f"Could not read cookies from the browser: {e}")
            return
        save_cookies(self.options.cookie_file, cookies, verbose=self.options.verbose)


async def scrape_url(url: str, options: Optional[ScrapeOptions] = None, browser=None) -> ScrapeResult:
    """Fetch *url* with a one-off :class:`Scraper`."""
    return await Scraper(options, browser).scrape(url)
