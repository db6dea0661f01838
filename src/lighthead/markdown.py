"""
HTML to Markdown conversion.

The page is parsed once with BeautifulSoup and then goes through a short
chain of tree passes (boilerplate removal, link and image rewriting) before
markdownify renders it. The result is cleaned up as text: non-breaking
spaces become plain spaces and runs of blank lines outside fenced code
collapse to a single blank line.

The conversion is heuristic. It never raises: broken markup degrades to
whatever text BeautifulSoup can recover.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup
from markdownify import ATX, MarkdownConverter

logger = logging.getLogger(__name__)

# Subtrees dropped together with everything nested inside them.
BOILERPLATE_TAGS = ["script", "style", "nav", "header", "footer", "aside"]

_FENCED_BLOCK = re.compile(r"(```.*?```)", re.DOTALL)
_EXTRA_BLANK_LINES = re.compile(r"\n\s*\n\s*\n")


class PageMarkdownConverter(MarkdownConverter):
    """
    markdownify converter with ATX headings and plain newlines for <br>.

    Text is not escaped, links are always written inline, and inline code
    keeps its spacing.
    """

    class Options(MarkdownConverter.DefaultOptions):
        heading_style = ATX
        bs4_options = "html.parser"
        escape_asterisks = False
        escape_underscores = False
        autolinks = False

    def convert_br(self, el, text, parent_tags):
        if "_inline" in parent_tags:
            return text + " " if text else " "
        return "\n" + text

    def convert_code(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        # The collapsed child text loses runs of spaces.
        raw = el.get_text().replace("\r", " ").replace("\n", " ")
        return super().convert_code(el, raw, parent_tags)


# --- URL helpers ---

def is_javascript_url(url: str) -> bool:
    return url.strip().lower().startswith("javascript:")


def resolve_url(url: str, base_url: Optional[str] = None) -> str:
    """
    Make *url* absolute.

    Protocol-relative URLs get ``https:``; http(s) URLs are returned as is;
    anything else is resolved against *base_url*. When there is no usable
    base, or resolution fails, the original value is returned.
    """
    candidate = url.strip()
    if candidate.startswith("//"):
        return "https:" + candidate
    if candidate.lower().startswith(("http://", "https://")):
        return url
    if not base_url:
        return url
    try:
        base = urlsplit(base_url)
        if not base.scheme or not base.netloc:
            return url
        return urljoin(base_url, candidate)
    except ValueError:
        return url


# --- Tree passes ---

def strip_boilerplate(soup: BeautifulSoup, base_url: Optional[str] = None) -> None:
    """Remove navigation, chrome and executable content."""
    for tag in soup.find_all(BOILERPLATE_TAGS):
        # Nested matches were destroyed along with their ancestor.
        if tag.decomposed:
            continue
        tag.decompose()


def rewrite_links(soup: BeautifulSoup, base_url: Optional[str] = None) -> None:
    """Absolutize anchor targets; javascript: and empty targets become plain text."""
    for a in soup.find_all("a"):
        href = a.get("href")
        if href is None:
            continue
        if not href.strip() or is_javascript_url(href):
            del a["href"]
            continue
        a["href"] = resolve_url(href, base_url)


def rewrite_images(soup: BeautifulSoup, base_url: Optional[str] = None) -> None:
    """Absolutize image sources and drop images that have nothing to point at."""
    for img in soup.find_all("img"):
        src = img.get("src")
        if not src or not src.strip() or is_javascript_url(src):
            img.decompose()
            continue
        img["src"] = resolve_url(src, base_url)


TREE_PASSES: list[Callable[[BeautifulSoup, Optional[str]], None]] = [
    strip_boilerplate,
    rewrite_links,
    rewrite_images,
]


# --- Text passes ---

def normalize_whitespace(markdown: str) -> str:
    markdown = markdown.replace("\xa0", " ")
    parts = _FENCED_BLOCK.split(markdown)
    # Odd indexes hold fenced code blocks, which keep their blank lines.
    for i in range(0, len(parts), 2):
        parts[i] = _EXTRA_BLANK_LINES.sub("\n\n", parts[i])
    return "".join(parts).strip()


def to_markdown(html: str, base_url: Optional[str] = None) -> str:
    """
    Convert an HTML document or fragment to Markdown.

    Args:
        html (str): The markup to convert. Empty input gives empty output.
        base_url (Optional[str]): URL used to resolve relative links and images.

    Returns:
        str: The Markdown text, trimmed.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tree_pass in TREE_PASSES:
        tree_pass(soup, base_url)

    try:
        markdown = PageMarkdownConverter().convert_soup(soup)
    except RecursionError:
        logger.warning("Markup is nested too deeply for Markdown conversion, falling back to plain text.")
        markdown = soup.get_text()

    return normalize_whitespace(markdown)
