import unittest
from unittest.mock import patch
import asyncio
import json
import os
import re
import sys
import tempfile
from pathlib import Path

# Add the src directory to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import FakeBrowser, FakeResponse, html_response
from lighthead.errors import (
    InvalidRangeError,
    InvalidUrlError,
    NavigationAbortedError,
    NavigationError,
    UnsupportedProtocolError,
)
from lighthead.fetcher import (
    DOWNLOAD_GRACE_SECONDS,
    NAVIGATION_TIMEOUT_MS,
    NETWORK_IDLE_TIMEOUT_MS,
    PDF_DOWNLOAD_GRACE_SECONDS,
    Scraper,
    scrape_url,
)
from lighthead.models import BinaryResult, DownloadedFile, HtmlResult, RedirectRecord, ScrapeOptions

QUIET = ScrapeOptions(stealth=False)


class TestHtmlPages(unittest.IsolatedAsyncioTestCase):

    async def test_boilerplate_is_stripped_from_markdown(self):
        browser = FakeBrowser(
            response=html_response("https://example.com/", "<nav>Nav</nav><h1>T</h1><p>Body</p><footer>F</footer>"),
            text="Nav T Body F",
        )

        result = await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertIsInstance(result, HtmlResult)
        self.assertEqual(result.type, "html")
        self.assertEqual(result.markdown, "# T\n\nBody")
        self.assertNotIn("Nav", result.markdown)
        self.assertNotIn("F", result.markdown)
        self.assertIn("<nav>Nav</nav>", result.html)
        self.assertEqual(result.text, "Nav T Body F")
        self.assertTrue(browser.session.closed)

    async def test_default_wait_strategy_and_idle_budget(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>"))

        await scrape_url("https://example.com/", QUIET, browser=browser)

        session = browser.session
        self.assertEqual(session.navigations, [("https://example.com/", "domcontentloaded", NAVIGATION_TIMEOUT_MS)])
        self.assertEqual(session.idle_timeouts, [NETWORK_IDLE_TIMEOUT_MS])
        self.assertEqual(session.download_timeouts, [0])

    async def test_no_redirects_waits_only_for_commit(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>"))

        await scrape_url("https://example.com/", ScrapeOptions(stealth=False, follow_redirects=False), browser=browser)

        self.assertEqual(browser.session.navigations[0][1], "commit")
        self.assertEqual(browser.session.idle_timeouts, [])

    async def test_network_idle_timeout_is_tolerated(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>Loaded</p>"), network_idle=False)

        result = await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertEqual(result.markdown, "Loaded")

    async def test_relative_links_resolve_against_final_url(self):
        browser = FakeBrowser(
            response=html_response("https://example.com/docs/page", '<a href="intro">Intro</a>'),
        )

        result = await scrape_url("https://example.com/start", QUIET, browser=browser)

        self.assertEqual(result.markdown, "[Intro](https://example.com/docs/intro)")
        self.assertEqual(result.url, "https://example.com/start")
        self.assertEqual(result.final_url, "https://example.com/docs/page")

    async def test_live_dom_is_used_when_body_is_unavailable(self):
        response = html_response("https://example.com/", "<p>served</p>", text_error=RuntimeError("body gone"))
        browser = FakeBrowser(response=response, dom="<html><body><p>rendered</p></body></html>")

        result = await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertEqual(result.markdown, "rendered")

    async def test_response_metadata_has_lower_cased_headers(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>", status=203, status_text="Non-Authoritative"))

        result = await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertEqual(result.response.status, 203)
        self.assertEqual(result.response.status_text, "Non-Authoritative")
        self.assertEqual(result.response.headers["content-type"], "text/html; charset=utf-8")


class TestRedirects(unittest.IsolatedAsyncioTestCase):

    async def test_two_redirects_are_recorded_in_order(self):
        chain = [
            RedirectRecord("http://example.com/a", "https://example.com/a", 301),
            RedirectRecord("https://example.com/a", "https://example.com/b", 302),
        ]
        browser = FakeBrowser(response=html_response("https://example.com/b", "<p>B</p>"), redirects=chain)

        result = await scrape_url("http://example.com/a", QUIET, browser=browser)

        self.assertEqual(len(result.redirect_chain), 2)
        self.assertEqual([r.status for r in result.redirect_chain], [301, 302])
        self.assertEqual(result.redirect_chain[0].source, "http://example.com/a")
        self.assertEqual(result.redirect_chain[1].target, "https://example.com/b")
        self.assertEqual(result.final_url, "https://example.com/b")

    async def test_redirects_are_recorded_without_following(self):
        chain = [RedirectRecord("https://example.com/old", "unknown", 307)]
        browser = FakeBrowser(response=html_response("https://example.com/new", "<p>x</p>"), redirects=chain)

        result = await scrape_url("https://example.com/old", ScrapeOptions(stealth=False, follow_redirects=False), browser=browser)

        self.assertEqual(result.redirect_chain, tuple(chain))


class TestBinaryPayloads(unittest.IsolatedAsyncioTestCase):

    async def test_pdf_response_becomes_binary_result(self):
        body = b"%PDF-1.4\n" + b"0" * 512
        browser = FakeBrowser(response=FakeResponse(
            "https://example.com/report.pdf",
            headers={"Content-Type": "application/pdf"},
            body=body,
        ))

        result = await scrape_url("https://example.com/report.pdf", QUIET, browser=browser)

        self.assertIsInstance(result, BinaryResult)
        self.assertEqual(result.type, "binary")
        self.assertTrue(result.filename.endswith(".pdf"))
        self.assertEqual(len(result.buffer), len(body))
        self.assertEqual(result.content_type, "application/pdf")
        # PDF-like URLs navigate eagerly, skip the idle wait and allow a late download.
        self.assertEqual(browser.session.navigations[0][1], "commit")
        self.assertEqual(browser.session.idle_timeouts, [])
        self.assertEqual(browser.session.download_timeouts, [PDF_DOWNLOAD_GRACE_SECONDS])

    async def test_binary_filename_uses_content_type_extension(self):
        browser = FakeBrowser(response=FakeResponse(
            "https://example.com/avatar",
            headers={"content-type": "image/png"},
            body=b"\x89PNG",
        ))

        result = await scrape_url("https://example.com/avatar", QUIET, browser=browser)

        self.assertRegex(result.filename, r"^download_\d+\.png$")

    async def test_missing_content_type_is_binary(self):
        browser = FakeBrowser(response=FakeResponse("https://example.com/blob", body=b"\x00\x01"))

        result = await scrape_url("https://example.com/blob", QUIET, browser=browser)

        self.assertIsInstance(result, BinaryResult)
        self.assertTrue(result.filename.endswith(".bin"))

    async def test_aborted_navigation_with_download_succeeds(self):
        browser = FakeBrowser(
            navigate_error=NavigationAbortedError("net::ERR_ABORTED"),
            download=DownloadedFile(b"%PDF-1.7 data", "paper.pdf", "https://example.com/get?id=1"),
        )

        result = await scrape_url("https://example.com/get?id=1", QUIET, browser=browser)

        self.assertIsInstance(result, BinaryResult)
        self.assertEqual(result.filename, "paper.pdf")
        self.assertEqual(result.buffer, b"%PDF-1.7 data")
        self.assertEqual(result.content_type, "application/pdf")
        self.assertEqual(result.response.status, 200)
        self.assertEqual(result.response.status_text, "OK")
        self.assertEqual(browser.session.download_timeouts, [DOWNLOAD_GRACE_SECONDS])
        self.assertEqual(browser.session.idle_timeouts, [])
        self.assertTrue(browser.session.closed)

    async def test_download_after_commit_wins_over_response(self):
        browser = FakeBrowser(
            response=html_response("https://example.com/file.pdf", "<p>viewer</p>"),
            download=DownloadedFile(b"%PDF", "file.pdf", "https://example.com/file.pdf"),
        )

        result = await scrape_url("https://example.com/file.pdf", QUIET, browser=browser)

        self.assertIsInstance(result, BinaryResult)
        self.assertEqual(result.filename, "file.pdf")
        self.assertEqual(result.content_type, "application/pdf")

    async def test_empty_download_is_ignored(self):
        browser = FakeBrowser(
            response=html_response("https://example.com/", "<p>page</p>"),
            download=DownloadedFile(b"", "empty.bin", "https://example.com/"),
        )

        result = await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertIsInstance(result, HtmlResult)


class TestFailures(unittest.IsolatedAsyncioTestCase):

    async def test_abort_without_download_propagates(self):
        browser = FakeBrowser(navigate_error=NavigationAbortedError("net::ERR_ABORTED"))

        with self.assertRaises(NavigationError):
            await scrape_url("https://example.com/", QUIET, browser=browser)
        self.assertTrue(browser.session.closed)

    async def test_navigation_failure_tears_down_session(self):
        browser = FakeBrowser(navigate_error=NavigationError("Navigation to https://example.com/ timed out after 60000 ms"))

        with self.assertRaisesRegex(NavigationError, "timed out"):
            await scrape_url("https://example.com/", QUIET, browser=browser)
        self.assertTrue(browser.session.closed)

    async def test_missing_response_is_a_navigation_error(self):
        browser = FakeBrowser(response=None)

        with self.assertRaises(NavigationError):
            await scrape_url("https://example.com/", QUIET, browser=browser)
        self.assertTrue(browser.session.closed)

    async def test_cancellation_tears_down_session(self):
        browser = FakeBrowser(navigate_error=asyncio.CancelledError())

        with self.assertRaises(asyncio.CancelledError):
            await scrape_url("https://example.com/", QUIET, browser=browser)
        self.assertTrue(browser.session.closed)

    async def test_invalid_url_never_launches_browser(self):
        browser = FakeBrowser()

        with self.assertRaises(InvalidUrlError):
            await scrape_url("not a url", QUIET, browser=browser)
        with self.assertRaises(UnsupportedProtocolError):
            await scrape_url("ftp://example.com/file", QUIET, browser=browser)
        self.assertEqual(browser.sessions, [])

    async def test_out_of_range_redirect_limit_never_launches_browser(self):
        browser = FakeBrowser()

        with self.assertRaises(InvalidRangeError):
            await scrape_url("https://example.com/", ScrapeOptions(max_redirects=101), browser=browser)
        self.assertEqual(browser.sessions, [])


class TestStealth(unittest.IsolatedAsyncioTestCase):

    async def test_stealth_pauses_and_humanizes(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>"))

        with patch("lighthead.fetcher.random.uniform", return_value=0.0) as uniform:
            await scrape_url("https://example.com/", ScrapeOptions(stealth=True), browser=browser)

        uniform.assert_called_once_with(1.0, 3.0)
        self.assertTrue(browser.session.config.stealth)
        self.assertTrue(browser.session.humanized)

    async def test_no_stealth_skips_humanizing(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>"))

        await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertFalse(browser.session.config.stealth)
        self.assertFalse(browser.session.humanized)


class TestCookies(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.cookie_file = Path(self.temp_dir.name) / "cookies.json"

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_cookies_are_seeded_and_saved(self):
        stored = [{"name": "sid", "value": "1", "domain": "example.com", "path": "/"}]
        self.cookie_file.write_text(json.dumps(stored), encoding="utf-8")
        jar = stored + [{"name": "seen", "value": "yes", "domain": "example.com", "path": "/"}]
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>"), jar=jar)

        options = ScrapeOptions(stealth=False, cookie_file=str(self.cookie_file))
        await Scraper(options, browser).scrape("https://example.com/")

        self.assertEqual(browser.session.seeded_cookies, stored)
        self.assertEqual(json.loads(self.cookie_file.read_text(encoding="utf-8")), jar)

    async def test_missing_cookie_file_is_created(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>x</p>"), jar=[{"name": "a", "value": "b"}])

        options = ScrapeOptions(stealth=False, cookie_file=str(self.cookie_file))
        await scrape_url("https://example.com/", options, browser=browser)

        self.assertEqual(browser.session.seeded_cookies, [])
        self.assertEqual(json.loads(self.cookie_file.read_text(encoding="utf-8")), [{"name": "a", "value": "b"}])

    async def test_rejected_cookies_do_not_stop_fetch(self):
        self.cookie_file.write_text(json.dumps([{"name": "bad"}]), encoding="utf-8")
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>ok</p>"), accept_cookies=False)

        options = ScrapeOptions(stealth=False, cookie_file=str(self.cookie_file))
        result = await scrape_url("https://example.com/", options, browser=browser)

        self.assertEqual(result.markdown, "ok")

    async def test_cookie_read_failure_is_not_fatal(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>ok</p>"), jar=RuntimeError("context closed"))

        options = ScrapeOptions(stealth=False, cookie_file=str(self.cookie_file))
        result = await scrape_url("https://example.com/", options, browser=browser)

        self.assertEqual(result.markdown, "ok")
        self.assertFalse(self.cookie_file.exists())

    async def test_no_cookie_file_means_no_persistence(self):
        browser = FakeBrowser(response=html_response("https://example.com/", "<p>ok</p>"), jar=RuntimeError("should not be read"))

        result = await scrape_url("https://example.com/", QUIET, browser=browser)

        self.assertEqual(result.markdown, "ok")


if __name__ == '__main__':
    unittest.main()
