"""
HTML → readable text conversion and link discovery for crawled pages.

Conversion chain: trafilatura → readability-lxml → block walker.
fallback_text() is the crude last resort used when conversion times out.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin, urlparse

import trafilatura
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString
from readability import Document

from .config import FALLBACK_TEXT_LIMIT
from .log import get_logger

logger = get_logger("content")

# Elements never rendered by the block walker
STRIP_TAGS = [
    'script', 'style', 'nav', 'header', 'footer', 'aside',
    'noscript', 'iframe', 'form', 'svg', 'button',
]
HEADINGS = {'h1', 'h2', 'h3', 'h4', 'h5', 'h6'}
TEXT_BLOCKS = {'p', 'blockquote', 'dt', 'dd', 'figcaption', 'caption'}
NON_PAGE_SCHEMES = ('#', 'javascript:', 'mailto:', 'tel:', 'data:')

# Below this many characters an extractor result is treated as a miss
MIN_EXTRACTED_CHARS = 40


def _clean_text(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


def extract_title(html: str) -> str:
    """<title>, else the first <h1>, else ''."""
    soup = BeautifulSoup(html, 'lxml')
    if soup.title and soup.title.string:
        return _clean_text(soup.title.string)
    h1 = soup.find('h1')
    if h1:
        return _clean_text(h1.get_text(' '))
    return ''


def discover_links(html: str, base_url: str) -> list[str]:
    """
    Find anchor targets on a page, resolved to absolute http(s) URLs.

    Fragment-only, javascript:, mailto: and tel: links are dropped.
    Order of first appearance is kept.
    """
    soup = BeautifulSoup(html, 'lxml')
    links: list[str] = []
    seen: set[str] = set()

    for a in soup.find_all('a', href=True):
        href = a['href'].strip()
        if not href or href.lower().startswith(NON_PAGE_SCHEMES):
            continue

        full_url = urljoin(base_url, href)
        parsed = urlparse(full_url)
        if parsed.scheme not in ('http', 'https'):
            continue
        if full_url not in seen:
            seen.add(full_url)
            links.append(full_url)

    return links


# =============================================================================
# Extractors
# =============================================================================

def extract_trafilatura(html: str, url: str | None = None) -> str | None:
    """Main-content extraction with trafilatura, as markdown."""
    try:
        text = trafilatura.extract(
            html,
            url=url,
            output_format='markdown',
            include_links=True,
            include_tables=True,
            include_comments=False,
            favor_recall=True,
        )
    except Exception as e:
        logger.debug("trafilatura failed on %s: %s", url, e)
        return None
    if not text or len(text.strip()) < MIN_EXTRACTED_CHARS:
        return None
    return text.strip()


def extract_readability(html: str) -> str | None:
    """readability-lxml summary, rendered through the block walker."""
    try:
        summary_html = Document(html).summary()
    except Exception as e:
        logger.debug("readability failed: %s", e)
        return None
    text = html_blocks_to_text(summary_html)
    if len(text) < MIN_EXTRACTED_CHARS:
        return None
    return text


def _inline(node: Tag) -> str:
    parts = []
    for child in node.children:
        if isinstance(child, PreformattedString):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif child.name == 'a' and child.get('href'):
            text = _clean_text(_inline(child))
            if text:
                parts.append(f"[{text}]({child['href']})")
        elif child.name == 'br':
            parts.append('\n')
        elif child.name == 'code':
            parts.append(f"`{child.get_text()}`")
        elif child.name in STRIP_TAGS:
            continue
        else:
            parts.append(_inline(child))
    return ''.join(parts)


def _walk(node: Tag, out: list[str]) -> None:
    for child in node.children:
        if isinstance(child, PreformattedString):
            continue
        if isinstance(child, NavigableString):
            text = _clean_text(str(child))
            if text:
                out.append(text)
            continue

        name = child.name
        if name in STRIP_TAGS:
            continue
        if name in HEADINGS:
            text = _clean_text(_inline(child))
            if text:
                out.append(f"{'#' * int(name[1])} {text}")
        elif name == 'pre':
            out.append(f"```\n{child.get_text().rstrip()}\n```")
        elif name in ('ul', 'ol'):
            for li in child.find_all('li', recursive=False):
                text = _clean_text(_inline(li))
                if text:
                    out.append(f"- {text}")
        elif name == 'tr':
            cells = [_clean_text(_inline(c)) for c in child.find_all(['td', 'th'], recursive=False)]
            if any(cells):
                out.append(' | '.join(cells))
        elif name in TEXT_BLOCKS:
            text = _clean_text(_inline(child))
            if text:
                out.append(text)
        else:
            _walk(child, out)


def html_blocks_to_text(html: str) -> str:
    """
    Render HTML as markdown-ish text: headings become '#', list items '-',
    <pre> fenced code, links [text](url).
    """
    soup = BeautifulSoup(html, 'lxml')
    root = soup.body or soup
    blocks: list[str] = []
    _walk(root, blocks)
    return '\n\n'.join(blocks).strip()


def html_to_text(html: str, url: str | None = None) -> str:
    """Convert a page to readable text, trying each extractor in turn."""
    text = extract_trafilatura(html, url)
    if text:
        return text
    text = extract_readability(html)
    if text:
        return text
    return html_blocks_to_text(html)


def fallback_text(html: str, limit: int = FALLBACK_TEXT_LIMIT) -> str:
    """
    Crude tag stripping: drop script/style, keep <body>, remove tags,
    collapse whitespace, truncate to limit characters.
    """
    text = re.sub(r'<(script|style)\b[^>]*>.*?</\1\s*>', ' ', html, flags=re.I | re.S)
    body = re.search(r'<body\b[^>]*>(.*?)(?:</body\s*>|$)', text, flags=re.I | re.S)
    if body:
        text = body.group(1)
    text = re.sub(r'<[^>]+>', ' ', text)
    return _clean_text(text)[:limit]


__all__ = [
    'extract_title',
    'discover_links',
    'extract_trafilatura',
    'extract_readability',
    'html_blocks_to_text',
    'html_to_text',
    'fallback_text',
]
