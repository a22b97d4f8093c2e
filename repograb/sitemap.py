"""
Sitemap discovery and parsing for crawl seeding.

Supports:
- Standard sitemap.xml (<urlset><url><loc>)
- Sitemap index files, followed one level
- Locations declared in robots.txt plus the common defaults

Usage:
    from repograb.sitemap import discover_sitemap_urls

    urls = discover_sitemap_urls("https://example.com", robots.sitemaps, session)
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

import requests

from .config import REQUEST_TIMEOUT, SITEMAP_PATHS, USER_AGENT
from .errors import InvalidURL
from .log import get_logger
from .safe_fetch import is_public_url, safe_get

logger = get_logger("sitemap")

MAX_SITEMAP_URLS = 10000


@dataclass
class SitemapResult:
    """Result of fetching and parsing one sitemap."""
    found: bool = False
    sitemap_url: str = ''
    is_index: bool = False
    urls: list[str] = field(default_factory=list)
    child_sitemaps: list[str] = field(default_factory=list)
    error: str | None = None


def _local(tag: str) -> str:
    """'{http://www.sitemaps.org/schemas/sitemap/0.9}loc' -> 'loc'."""
    return tag.rsplit('}', 1)[-1]


def parse_sitemap_xml(content: str) -> tuple[bool, list[str]]:
    """
    Parse sitemap XML, namespaced or not.

    Returns:
        (is_index, locs): locs are page URLs for a urlset, child sitemap
        URLs for a sitemapindex

    Raises:
        ET.ParseError on malformed XML
    """
    root = ET.fromstring(content)
    is_index = _local(root.tag) == 'sitemapindex'
    entry_tag = 'sitemap' if is_index else 'url'

    locs = []
    for elem in root:
        if _local(elem.tag) != entry_tag:
            continue
        for child in elem:
            if _local(child.tag) == 'loc' and child.text and child.text.strip():
                locs.append(child.text.strip())
                break
    return is_index, locs


def _get(url: str, session: requests.Session, timeout: float) -> tuple[str | None, int]:
    """Fetch URL, return (content, status_code)."""
    try:
        resp = safe_get(
            session,
            url,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
        )
        if resp.status_code == 200:
            return resp.text, resp.status_code
        return None, resp.status_code
    except InvalidURL as e:
        logger.debug("Sitemap fetch blocked for %s: %s", url, e.reason)
        return None, 0
    except requests.RequestException:
        return None, 0


def fetch_sitemap(
    sitemap_url: str,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT,
    follow_index: bool = True,
    max_urls: int = MAX_SITEMAP_URLS,
    host: str | None = None,
) -> SitemapResult:
    """
    Fetch a sitemap and extract page URLs.

    Args:
        sitemap_url: URL of the sitemap
        follow_index: If True, fetch child sitemaps of an index (one level)
        max_urls: Maximum URLs to return
        host: Child sitemaps of an index must be on this host
              (defaults to the host of sitemap_url)
    """
    session = session or requests.Session()
    result = SitemapResult(sitemap_url=sitemap_url)

    content, status = _get(sitemap_url, session, timeout)
    if not content:
        result.error = f"Failed to fetch sitemap (status {status})"
        return result

    try:
        is_index, locs = parse_sitemap_xml(content)
    except ET.ParseError as e:
        result.error = f"XML parse error: {e}"
        return result

    result.found = True
    result.is_index = is_index

    if not is_index:
        result.urls = locs[:max_urls]
        return result

    host = host or urlparse(sitemap_url).hostname or ''
    result.child_sitemaps = [loc for loc in locs if is_public_url(loc, host)]
    if follow_index:
        for child_url in result.child_sitemaps:
            if len(result.urls) >= max_urls:
                break
            child = fetch_sitemap(
                child_url,
                session=session,
                timeout=timeout,
                follow_index=False,  # Don't recurse further
                max_urls=max_urls - len(result.urls),
            )
            result.urls.extend(child.urls)
    return result


def discover_sitemap_urls(
    base_url: str,
    robots_hints: list[str] | None = None,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT,
    max_urls: int = MAX_SITEMAP_URLS,
) -> list[str]:
    """
    Collect page URLs from the default sitemap locations and robots.txt hints.

    Returns:
        Unique page URLs in discovery order
    """
    parsed = urlparse(base_url)
    base = f"{parsed.scheme}://{parsed.netloc}"
    session = session or requests.Session()

    host = (parsed.hostname or '').lower()
    candidates = [urljoin(base, path) for path in SITEMAP_PATHS]
    for hint in robots_hints or []:
        # Hints come from the crawled site; only same-host public URLs are fetched
        if hint not in candidates and is_public_url(hint, host):
            candidates.append(hint)

    seen: set[str] = set()
    urls: list[str] = []
    for sitemap_url in candidates:
        if len(urls) >= max_urls:
            break
        result = fetch_sitemap(sitemap_url, session=session, timeout=timeout,
                               max_urls=max_urls - len(urls), host=host)
        if not result.found:
            continue
        logger.debug("Sitemap %s: %d URLs", sitemap_url, len(result.urls))
        for url in result.urls:
            if url not in seen:
                seen.add(url)
                urls.append(url)
    return urls


__all__ = ['SitemapResult', 'parse_sitemap_xml', 'fetch_sitemap', 'discover_sitemap_urls']
