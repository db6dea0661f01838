#!/usr/bin/env python3
"""
Fetch a web page through a headless browser and print it as HTML, text or Markdown.

Usage:
    lighthead <url> [--format html|markdown|md|text|txt] [--output PATH] [--download]
              [--cookies PATH] [--no-redirects] [--max-redirects N] [--no-stealth] [-v]

Args:
    url (str): The http(s) URL to fetch.
    --format (str, optional): Output format for HTML pages. Defaults to html.
    --output (str, optional): Write the output to this file instead of stdout.
    --download (bool, optional): Save binary responses (PDFs, images...) to disk.
    --cookies (str, optional): JSON cookie file loaded before and saved after the fetch.
    --no-redirects (bool, optional): Return as soon as the first response commits.
    --max-redirects (int, optional): Redirect limit between 0 and 100. Defaults to 10.
    --no-stealth (bool, optional): Disable the bot-detection countermeasures.
    -v, --verbose (bool, optional): Trace every phase of the fetch on stderr.

Returns:
    (stdout): The page in the requested format, unless --output is given.
    (stderr): Progress messages, and ``Error: <message>`` on failure (exit code 1).
"""

import asyncio
import logging
import sys
from pathlib import Path

from lighthead.errors import LightheadError
from lighthead.fetcher import scrape_url
from lighthead.io_utils import (
    ArgumentParsingError,
    GracefulArgumentParser,
    eprint,
    eprint_error,
    handle_argument_parsing_error,
    handle_unexpected_error,
    print_text_stdout,
    setup_logging,
)
from lighthead.models import BinaryResult, HtmlResult, ScrapeOptions
from lighthead.validation import validate_format, validate_max_redirects, validate_url

logger = logging.getLogger(__name__)


def build_parser() -> GracefulArgumentParser:
    parser = GracefulArgumentParser(
        prog="lighthead",
        description="Fetch a web page through a headless browser and convert it to HTML, text or Markdown.",
    )
    parser.add_argument("url", nargs="?", help="The http(s) URL to fetch.")
    parser.add_argument("--format", default="html", help="Output format: html, markdown, md, text, txt (default: html).")
    parser.add_argument("--output", help="Write the output to this file instead of stdout.")
    parser.add_argument("--download", action="store_true", help="Save binary responses such as PDFs to disk.")
    parser.add_argument("--cookies", help="JSON cookie file loaded before and saved after the fetch.")
    parser.add_argument("--no-redirects", action="store_true", help="Do not wait for redirects to settle.")
    parser.add_argument("--max-redirects", default="10", help="Maximum number of redirects, 0-100 (default: 10).")
    parser.add_argument("--no-stealth", action="store_true", help="Disable bot-detection countermeasures.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Trace every phase of the fetch on stderr.")
    return parser


def render(result: HtmlResult, fmt: str) -> str:
    if fmt in ("markdown", "md"):
        return result.markdown
    if fmt in ("text", "txt"):
        return result.text
    return result.html


def write_html_result(result: HtmlResult, fmt: str, output: str = None) -> None:
    content = render(result, fmt)
    if output:
        Path(output).write_text(content, encoding="utf-8")
        eprint(f"Saved to: {output}")
    else:
        print_text_stdout(content)


def write_binary_result(result: BinaryResult, download: bool, output: str = None) -> None:
    if not download:
        eprint("Binary file detected. Use --download to save it.")
        eprint(f"Content-Type: {result.content_type}")
        eprint(f"Size: {len(result.buffer)} bytes")
        return
    target = Path(output or result.filename)
    target.write_bytes(result.buffer)
    eprint(f"Downloaded: {target}")


async def main_async(args) -> None:
    validate_url(args.url)
    fmt = validate_format(args.format)
    max_redirects = validate_max_redirects(args.max_redirects)
    options = ScrapeOptions(
        verbose=args.verbose,
        follow_redirects=not args.no_redirects,
        cookie_file=args.cookies,
        max_redirects=max_redirects,
        stealth=not args.no_stealth,
    )

    if args.verbose:
        logger.info("=== LIGHTHEAD VERBOSE MODE ===")
        logger.info(f"Target URL: {args.url}")
        logger.info(f"Output format: {fmt}")
        logger.info(f"Output file: {args.output or 'stdout'}")
        logger.info(f"Download mode: {args.download}")
        logger.info(f"Follow redirects: {options.follow_redirects}")
        logger.info(f"Max redirects: {options.max_redirects}")
        logger.info(f"Cookie file: {options.cookie_file or 'none'}")
        logger.info(f"Stealth mode: {options.stealth}")
    else:
        eprint(f"Scraping: {args.url}")

    result = await scrape_url(args.url, options)

    if args.verbose:
        logger.info("=== SCRAPING COMPLETED ===")
        logger.info(f"Result type: {result.type}")
        logger.info(f"Final status: {result.response.status} {result.response.status_text}")

    if isinstance(result, HtmlResult):
        write_html_result(result, fmt, args.output)
    else:
        write_binary_result(result, args.download, args.output)


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    if len(sys.argv) <= 1:
        parser.print_help(sys.stdout)
        sys.exit(0)

    try:
        args = parser.parse_args()
        if not args.url:
            raise ArgumentParsingError("URL is required")
        setup_logging(args.verbose)
        asyncio.run(main_async(args))
    except ArgumentParsingError as e:
        handle_argument_parsing_error(e)
        sys.exit(1)
    except LightheadError as e:
        eprint_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Process interrupted by user.")
        sys.exit(1)
    except Exception as e:
        handle_unexpected_error(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
