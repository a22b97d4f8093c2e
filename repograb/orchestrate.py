"""
Acquisition entry point.

Primary interface:
    from repograb import acquire

    doc = acquire("https://github.com/psf/requests", AcquireOptions(extensions=['.py']))
    result = acquire("docs.example.com", AcquireOptions(format='json'))  # FetchResult

Steps: validate → cache lookup → fetch (repository or crawl) under a
watchdog deadline → best-effort cache write → render.
"""

from __future__ import annotations

import shutil
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path

import requests

from .cache import Cache, create_cache
from .config import AcquireOptions
from .crawler import CrawlerResult, CrawlOptions, WebCrawler
from .errors import AcquireTimeout, CacheError
from .files import FetchedFile, FileFilters
from .github import fetch_repository
from .log import get_logger
from .presenter import pages_to_documents, render_website
from .result import FetchResult
from .urls import ParsedSource, cache_key, parse_source

logger = get_logger("orchestrate")


class Deadline:
    """Watchdog budget for one acquire() call."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._expires = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self) -> None:
        if self.expired():
            raise AcquireTimeout(f"Operation timed out after {self.seconds:.0f}s")

    def timeout(self, cap: float) -> float:
        """Per-request timeout: cap, or whatever budget is left if smaller."""
        self.check()
        return min(cap, self.remaining())


def _fetch_payload(
    parsed: ParsedSource,
    options: AcquireOptions,
    session: requests.Session | None,
    deadline: Deadline,
) -> dict:
    """Fetch fresh content and return it in its cacheable form."""
    fetched_at = datetime.now(timezone.utc).isoformat()
    if parsed.is_git:
        workdir = Path(tempfile.mkdtemp(prefix='repograb-'))
        try:
            fetched = fetch_repository(parsed, options, workdir, session=session, deadline=deadline)
            deadline.check()
            files = fetched.read_files(FileFilters.from_options(options))
        finally:
            shutil.rmtree(workdir, ignore_errors=True)
        logger.info("Fetched %d files from %s via %s", len(files), parsed.label, fetched.method)
        return {
            'kind': 'files',
            'method': fetched.method,
            'ref': fetched.ref,
            'fetched_at': fetched_at,
            'files': [f.to_dict() for f in files],
        }

    crawler = WebCrawler(parsed, CrawlOptions.from_options(options), session=session, deadline=deadline)
    pages = crawler.crawl()
    return {'kind': 'pages', 'fetched_at': fetched_at, 'pages': [p.to_dict() for p in pages]}


def _cache_lookup(cache: Cache, key: str) -> dict | None:
    try:
        entry = cache.get(key)
    except Exception as e:
        logger.warning("Cache read failed, fetching fresh: %s", e)
        return None
    if entry is None or not isinstance(entry.content, dict) or 'kind' not in entry.content:
        return None
    return entry.content


def _cache_store(cache: Cache, key: str, payload: dict, ttl: int) -> None:
    try:
        cache.set(key, payload, ttl=ttl, content_type='application/json')
    except CacheError as e:
        logger.warning("Cache write failed (%s): %s", e.operation, e.message)


def load_payload(
    source: str,
    options: AcquireOptions | None = None,
    cache: Cache | None = None,
    session: requests.Session | None = None,
) -> tuple[ParsedSource, dict]:
    """Validate, then serve from cache or fetch fresh. Returns (source, payload)."""
    options = options or AcquireOptions()
    parsed = parse_source(source)
    key = cache_key(parsed, options)

    use_cache = not options.no_cache
    if use_cache and cache is None:
        cache = create_cache('disk', ttl=options.cache_ttl)

    if use_cache and not options.force_refresh:
        payload = _cache_lookup(cache, key)
        if payload is not None:
            logger.info("Cache hit for %s", parsed.label)
            return parsed, payload

    deadline = Deadline(options.timeout)
    payload = _fetch_payload(parsed, options, session, deadline)

    if use_cache:
        _cache_store(cache, key, payload, options.cache_ttl)
    return parsed, payload


def _payload_files(payload: dict) -> list[FetchedFile]:
    return [FetchedFile.from_dict(f) for f in payload.get('files', [])]


def _payload_pages(payload: dict) -> list[CrawlerResult]:
    return [CrawlerResult.from_dict(p) for p in payload.get('pages', [])]


def _build_result(parsed: ParsedSource, payload: dict) -> FetchResult:
    if payload['kind'] == 'files':
        files = [(f.path, f.content) for f in _payload_files(payload)]
        return FetchResult.from_files(
            files,
            source=parsed.normalized_url,
            provider=parsed.provider,
            owner=parsed.owner,
            repo=parsed.repo,
            ref=payload.get('ref'),
            method=payload.get('method'),
            fetched_at=payload.get('fetched_at'),
        )
    pages = _payload_pages(payload)
    return FetchResult.from_files(
        pages_to_documents(pages),
        source=parsed.normalized_url,
        fetched_at=payload.get('fetched_at'),
        pages_crawled=len(pages),
        pages_failed=sum(1 for p in pages if p.error),
    )


def render_payload(parsed: ParsedSource, payload: dict, options: AcquireOptions) -> str | FetchResult:
    if options.format == 'json':
        return _build_result(parsed, payload)
    if payload['kind'] == 'pages':
        return render_website(_payload_pages(payload), project_tree=options.project_tree)
    return _build_result(parsed, payload).to_markdown(
        project_tree=options.project_tree,
        line_numbers=options.line_numbers,
    )


def acquire(
    source: str,
    options: AcquireOptions | None = None,
    cache: Cache | None = None,
    session: requests.Session | None = None,
) -> str | FetchResult:
    """
    Acquire a git repository or website as one document.

    Args:
        source: Repository or site URL (scheme optional)
        options: AcquireOptions; defaults when omitted
        cache: Cache backend; a disk cache when omitted
        session: requests.Session for all HTTP traffic

    Returns:
        Markdown string, or a FetchResult when options.format == 'json'

    Raises:
        InvalidURL before any network activity; AuthRequired, NotFound,
        RateLimited, NetworkError, AcquireTimeout, ArchiveCorrupt from the fetch
    """
    options = options or AcquireOptions()
    parsed, payload = load_payload(source, options, cache=cache, session=session)
    return render_payload(parsed, payload, options)


def fetch_files(
    source: str,
    options: AcquireOptions | None = None,
    cache: Cache | None = None,
    session: requests.Session | None = None,
) -> list[FetchedFile]:
    """
    Return the raw files for a source without rendering.

    Websites come back as one synthesized markdown document per page.
    """
    parsed, payload = load_payload(source, options, cache=cache, session=session)
    if payload['kind'] == 'files':
        return _payload_files(payload)
    return [FetchedFile(path=path, content=text) for path, text in pages_to_documents(_payload_pages(payload))]


__all__ = ['Deadline', 'acquire', 'fetch_files', 'load_payload', 'render_payload']
