"""
GETs whose every hop passes URL validation.

Crawl targets come from pages, robots.txt and sitemaps the crawled site
controls, so redirects are followed by hand: each Location is checked with
validate_url before it is requested.
"""

from __future__ import annotations

from urllib.parse import urljoin, urlparse

import requests

from .errors import InvalidURL
from .log import get_logger
from .urls import validate_url

logger = get_logger("safe_fetch")

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 5


def is_public_url(url: str, host: str | None = None) -> bool:
    """True when url passes validate_url and, if host is given, is on that host."""
    try:
        validate_url(url)
    except InvalidURL as e:
        logger.debug("Rejected %s: %s", url, e.reason)
        return False
    if host is not None and (urlparse(url).hostname or '').lower() != host.lower():
        logger.debug("Rejected off-host URL %s", url)
        return False
    return True


def safe_get(
    session: requests.Session,
    url: str,
    max_redirects: int = MAX_REDIRECTS,
    **kwargs,
) -> requests.Response:
    """
    session.get with manual, validated redirect following.

    Raises:
        InvalidURL: url or a redirect target is a blocked address
        requests.TooManyRedirects: more than max_redirects hops
        requests.RequestException: transport failures, as session.get does
    """
    kwargs['allow_redirects'] = False
    validate_url(url)

    for _ in range(max_redirects + 1):
        resp = session.get(url, **kwargs)
        location = resp.headers.get('Location')
        if resp.status_code not in REDIRECT_STATUSES or not location:
            return resp
        resp.close()
        target = urljoin(url, location)
        try:
            validate_url(target)
        except InvalidURL as e:
            raise InvalidURL(target, f"Redirect from {url} blocked: {e.reason}") from e
        url = target

    raise requests.TooManyRedirects(f"Exceeded {max_redirects} redirects")


__all__ = ['is_public_url', 'safe_get']
