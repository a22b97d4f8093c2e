"""
Robots.txt parser and compliance checker.

Supports:
- User-agent groups (a group naming our agent replaces the '*' group)
- Allow/Disallow rules, longest match wins, Allow wins ties
- '*' and '$' wildcards in rule paths
- Crawl-delay directive
- Sitemap hints

Usage:
    from repograb.robots import fetch_robots

    robots = fetch_robots("https://example.com", session)
    if robots.is_allowed("/some/path"):
        # proceed with crawl
    robots.sitemaps  # declared sitemap URLs
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

import requests

from .config import REQUEST_TIMEOUT, ROBOTS_AGENT, USER_AGENT
from .errors import InvalidURL
from .log import get_logger
from .safe_fetch import safe_get

logger = get_logger("robots")


@dataclass
class RobotsRule:
    user_agent: str
    path: str
    allow: bool

    def __post_init__(self):
        self._regex = _compile(self.path)

    def matches(self, path: str) -> bool:
        return self._regex.match(path) is not None

    @property
    def specificity(self) -> int:
        return len(self.path)


def _compile(pattern: str) -> re.Pattern:
    anchored = pattern.endswith('$')
    if anchored:
        pattern = pattern[:-1]
    regex = '.*'.join(re.escape(part) for part in pattern.split('*'))
    return re.compile(regex + ('$' if anchored else ''))


@dataclass
class RobotsRuleSet:
    """Rules from one host's robots.txt that apply to our user agent."""
    found: bool = False
    url: str = ''
    rules: list[RobotsRule] = field(default_factory=list)
    crawl_delay: float | None = None
    sitemaps: list[str] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def parse(cls, content: str, agent: str = ROBOTS_AGENT, url: str = '') -> 'RobotsRuleSet':
        """Parse robots.txt text, keeping the group(s) that apply to agent."""
        agent = agent.lower()
        groups: list[tuple[list[str], list[RobotsRule], list[float]]] = []
        sitemaps: list[str] = []
        current_agents: list[str] = []
        current_rules: list[RobotsRule] = []
        current_delay: list[float] = []
        in_rules = False

        def close_group():
            if current_agents:
                groups.append((list(current_agents), list(current_rules), list(current_delay)))

        for line in content.splitlines():
            line = line.split('#', 1)[0].strip()
            if not line or ':' not in line:
                continue

            directive, _, value = line.partition(':')
            directive = directive.strip().lower()
            value = value.strip()

            if directive == 'user-agent':
                if in_rules:
                    close_group()
                    current_agents, current_rules, current_delay = [], [], []
                    in_rules = False
                current_agents.append(value.lower())

            elif directive in ('allow', 'disallow'):
                in_rules = True
                # An empty Disallow allows everything
                if value and current_agents:
                    current_rules.append(RobotsRule(
                        user_agent=current_agents[0],
                        path=value,
                        allow=directive == 'allow',
                    ))

            elif directive == 'crawl-delay':
                in_rules = True
                try:
                    current_delay.append(float(value))
                except ValueError:
                    pass

            elif directive == 'sitemap':
                # Sitemaps are global, not per user-agent
                if value and value not in sitemaps:
                    sitemaps.append(value)

        close_group()

        specific = [g for g in groups if any(a and a != '*' and (a == agent or agent in a) for a in g[0])]
        chosen = specific or [g for g in groups if '*' in g[0]]

        ruleset = cls(found=True, url=url, sitemaps=sitemaps)
        for _, rules, delays in chosen:
            ruleset.rules.extend(rules)
            if delays and ruleset.crawl_delay is None:
                ruleset.crawl_delay = delays[0]
        return ruleset

    def is_allowed(self, url_or_path: str) -> bool:
        """
        Check if a URL or path may be crawled.

        Args:
            url_or_path: Full URL or path (e.g., "/admin" or "https://example.com/admin")
        """
        if not self.found or not self.rules:
            return True

        if url_or_path.startswith(('http://', 'https://')):
            parsed = urlparse(url_or_path)
            path = parsed.path or '/'
            if parsed.query:
                path += '?' + parsed.query
        else:
            path = url_or_path or '/'

        best: RobotsRule | None = None
        for rule in self.rules:
            if not rule.matches(path):
                continue
            if (
                best is None
                or rule.specificity > best.specificity
                or (rule.specificity == best.specificity and rule.allow and not best.allow)
            ):
                best = rule
        return best is None or best.allow

    def to_dict(self) -> dict:
        return {
            'found': self.found,
            'url': self.url,
            'crawl_delay': self.crawl_delay,
            'sitemaps': self.sitemaps,
            'rules': [
                {'user_agent': r.user_agent, 'path': r.path, 'allow': r.allow}
                for r in self.rules[:20]
            ],
            'error': self.error,
        }


def fetch_robots(
    base_url: str,
    session: requests.Session | None = None,
    timeout: float = REQUEST_TIMEOUT,
    user_agent: str = USER_AGENT,
    agent: str = ROBOTS_AGENT,
) -> RobotsRuleSet:
    """
    Fetch and parse /robots.txt for a site.

    A missing robots.txt (or any fetch failure) means everything is allowed;
    the failure is recorded in .error.
    """
    parsed = urlparse(base_url)
    robots_url = urljoin(f"{parsed.scheme}://{parsed.netloc}", '/robots.txt')
    session = session or requests.Session()

    try:
        resp = safe_get(
            session,
            robots_url,
            timeout=timeout,
            headers={'User-Agent': user_agent},
        )
    except (requests.RequestException, InvalidURL) as e:
        logger.debug("robots.txt fetch failed for %s: %s", robots_url, e)
        return RobotsRuleSet(url=robots_url, error=str(e))

    if resp.status_code == 200:
        ruleset = RobotsRuleSet.parse(resp.text, agent=agent, url=robots_url)
        logger.debug(
            "robots.txt: %d rules, %d sitemaps for %s",
            len(ruleset.rules), len(ruleset.sitemaps), parsed.netloc,
        )
        return ruleset

    if resp.status_code in (404, 403, 410):
        # No robots.txt = everything allowed
        return RobotsRuleSet(url=robots_url)
    return RobotsRuleSet(url=robots_url, error=f"Unexpected status: {resp.status_code}")


__all__ = ['RobotsRule', 'RobotsRuleSet', 'fetch_robots']
