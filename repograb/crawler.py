"""
Bounded, polite breadth-first crawler for documentation sites.

Usage:
    from repograb.crawler import WebCrawler, CrawlOptions

    crawler = WebCrawler("https://docs.example.com", CrawlOptions(max_depth=2, max_pages=50))
    for page in crawler.crawl():
        print(page.url, page.title, page.error)

Bounds: max_depth link hops from the start page, max_pages unique paths,
one fetch in flight with a fixed delay between fetches. robots.txt is
honored unless ignore_robots is set, and its sitemaps seed the frontier.
"""

from __future__ import annotations

import re
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests

from .config import (
    DEFAULT_CRAWL_DELAY,
    DEFAULT_HEADERS,
    HTML_PROCESS_TIMEOUT,
    REQUEST_TIMEOUT,
    SKIP_EXTENSIONS,
    SKIP_PATH_PATTERNS,
    TRACKING_PARAMS,
    TRACKING_PREFIXES,
    USER_AGENT,
)
from .content import discover_links, extract_title, fallback_text, html_to_text
from .errors import InvalidURL
from .log import get_logger
from .robots import RobotsRuleSet, fetch_robots
from .safe_fetch import safe_get
from .sitemap import discover_sitemap_urls
from .urls import ParsedSource

logger = get_logger("crawler")

SKIP_PATH_RE = [re.compile(p, re.I) for p in SKIP_PATH_PATTERNS]
# Upper bound on a robots.txt Crawl-delay we are willing to honor
MAX_ROBOTS_DELAY = 5.0


@dataclass
class CrawlOptions:
    max_depth: int = 2
    max_pages: int = 50
    ignore_robots: bool = False
    delay: float = DEFAULT_CRAWL_DELAY
    user_agent: str = USER_AGENT
    request_timeout: float = REQUEST_TIMEOUT
    html_timeout: float = HTML_PROCESS_TIMEOUT

    @classmethod
    def from_options(cls, options) -> 'CrawlOptions':
        return cls(
            max_depth=options.max_depth,
            max_pages=options.max_pages,
            ignore_robots=options.ignore_robots,
            delay=options.crawl_delay,
            user_agent=options.user_agent,
            request_timeout=options.request_timeout,
        )


@dataclass
class CrawlerResult:
    """One visited page. Pages with an error carry no content."""
    url: str
    title: str = ''
    content: str = ''
    links: list[str] = field(default_factory=list)
    depth: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'links': self.links,
            'depth': self.depth,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CrawlerResult':
        return cls(
            url=data['url'],
            title=data.get('title', ''),
            content=data.get('content', ''),
            links=list(data.get('links', [])),
            depth=data.get('depth', 0),
            error=data.get('error'),
        )


def normalize_url(url: str) -> str:
    """
    Canonical form used for the visited set.

    Drops the fragment and tracking parameters (utm_*, fbclid, gclid) and
    strips a trailing slash except on the root path.
    """
    parsed = urlparse(url)
    query = [
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if k not in TRACKING_PARAMS and not k.startswith(TRACKING_PREFIXES)
    ]
    path = parsed.path or '/'
    if len(path) > 1 and path.endswith('/'):
        path = path.rstrip('/') or '/'
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        urlencode(query),
        '',
    ))


def should_skip_url(url: str) -> bool:
    """Non-page resources and auth/API endpoints."""
    path_lower = urlparse(url).path.lower()
    if any(path_lower.endswith(ext) for ext in SKIP_EXTENSIONS):
        return True
    return any(p.search(path_lower) for p in SKIP_PATH_RE)


def is_crawlable(url: str, host: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        return False
    if (parsed.hostname or '').lower() != host.lower():
        return False
    return not should_skip_url(url)


class WebCrawler:
    """
    Breadth-first crawler.

    State: FIFO frontier of (url, depth), visited normalized URLs, and the
    set of visited paths that counts against max_pages.
    """

    def __init__(
        self,
        source: ParsedSource | str,
        options: CrawlOptions | None = None,
        session: requests.Session | None = None,
        deadline=None,
        sleep=time.sleep,
    ):
        start = source.normalized_url if isinstance(source, ParsedSource) else source
        self.start_url = normalize_url(start)
        self.host = (urlparse(self.start_url).hostname or '').lower()
        self.options = options or CrawlOptions()
        self.session = session or requests.Session()
        self.deadline = deadline
        self._sleep = sleep

        self.frontier: deque[tuple[str, int]] = deque()
        self.visited: set[str] = set()
        self.visited_paths: set[str] = set()
        self.robots: RobotsRuleSet | None = None
        self.delay = self.options.delay
        self._executor: ThreadPoolExecutor | None = None

    def _timeout(self) -> float:
        if self.deadline is None:
            return self.options.request_timeout
        return self.deadline.timeout(self.options.request_timeout)

    def crawl(self) -> list[CrawlerResult]:
        results: list[CrawlerResult] = []
        self.frontier.append((self.start_url, 0))

        if not self.options.ignore_robots:
            self._load_robots()
            self._seed_from_sitemaps()

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='repograb-html')
        try:
            while self.frontier and len(self.visited_paths) < self.options.max_pages:
                if self.deadline is not None:
                    self.deadline.check()

                url, depth = self.frontier.popleft()
                url = normalize_url(url)
                if url in self.visited or depth > self.options.max_depth:
                    continue
                self.visited.add(url)

                path = urlparse(url).path or '/'
                if path in self.visited_paths:
                    continue
                if self.robots is not None and not self.robots.is_allowed(url):
                    logger.debug("Blocked by robots.txt: %s", url)
                    continue

                if self.visited_paths:
                    self._sleep(self.delay)
                self.visited_paths.add(path)

                result = self._fetch_page(url, depth)
                results.append(result)
                if result.error:
                    logger.debug("Page error %s: %s", url, result.error)
                    continue

                if depth < self.options.max_depth:
                    for link in result.links:
                        if link not in self.visited:
                            self.frontier.append((link, depth + 1))
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

        errors = sum(1 for r in results if r.error)
        logger.info("Crawled %d pages from %s (%d errors)", len(results), self.host, errors)
        return results

    def _load_robots(self) -> None:
        self.robots = fetch_robots(
            self.start_url,
            session=self.session,
            timeout=self._timeout(),
            user_agent=self.options.user_agent,
        )
        if self.robots.crawl_delay:
            self.delay = max(self.delay, min(self.robots.crawl_delay, MAX_ROBOTS_DELAY))

    def _seed_from_sitemaps(self) -> None:
        hints = self.robots.sitemaps if self.robots else []
        urls = discover_sitemap_urls(
            self.start_url,
            robots_hints=hints,
            session=self.session,
            timeout=self._timeout(),
        )
        seeded = 0
        for url in urls:
            url = normalize_url(url)
            if url == self.start_url or not is_crawlable(url, self.host):
                continue
            if self.robots is not None and not self.robots.is_allowed(url):
                continue
            self.frontier.append((url, 1))
            seeded += 1
        if seeded:
            logger.info("Seeded %d URLs from sitemaps", seeded)

    def _fetch_page(self, url: str, depth: int) -> CrawlerResult:
        headers = {**DEFAULT_HEADERS, 'User-Agent': self.options.user_agent}
        try:
            resp = safe_get(self.session, url, headers=headers, timeout=self._timeout())
        except InvalidURL as e:
            return CrawlerResult(url=url, depth=depth, error=f"Blocked: {e.reason}")
        except requests.RequestException as e:
            return CrawlerResult(url=url, depth=depth, error=f"Request failed: {e}")

        if not 200 <= resp.status_code < 300:
            return CrawlerResult(url=url, depth=depth, error=f"HTTP {resp.status_code}")

        content_type = resp.headers.get('Content-Type', '')
        if content_type and 'html' not in content_type.lower():
            return CrawlerResult(url=url, depth=depth, error=f"Not HTML: {content_type}")

        html = resp.text
        base = resp.url or url
        links = []
        for link in discover_links(html, base):
            link = normalize_url(link)
            if is_crawlable(link, self.host) and link not in links:
                links.append(link)

        return CrawlerResult(
            url=url,
            title=extract_title(html),
            content=self._convert(html, url),
            links=links,
            depth=depth,
        )

    def _convert(self, html: str, url: str) -> str:
        """html_to_text under a hard timeout; crude stripping when it fails."""
        future = self._executor.submit(html_to_text, html, url)
        try:
            return future.result(timeout=self.options.html_timeout)
        except FutureTimeout:
            logger.warning("HTML conversion timed out after %.1fs for %s", self.options.html_timeout, url)
            # The stuck worker can't be interrupted; route later pages to a fresh one
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='repograb-html')
        except Exception as e:
            logger.warning("HTML conversion failed for %s: %s", url, e)
        return fallback_text(html)


__all__ = [
    'CrawlOptions',
    'CrawlerResult',
    'WebCrawler',
    'normalize_url',
    'should_skip_url',
    'is_crawlable',
]
