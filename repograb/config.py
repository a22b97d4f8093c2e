"""
Configuration, defaults and options loading for repograb.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Literal

import yaml


USER_AGENT = "repograb/1.0"
# Token matched against robots.txt User-agent lines
ROBOTS_AGENT = "repograb"

DEFAULT_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
}

GITHUB_API = "https://api.github.com"
GITLAB_API = "https://gitlab.com/api/v4"
TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")

# Directories never ingested from a repository archive
DEFAULT_EXCLUDE_DIRS = (
    '.git', 'node_modules', 'dist', 'build', '.next', 'coverage',
)

# Crawl: file extensions that are never pages
SKIP_EXTENSIONS = (
    '.pdf', '.jpg', '.jpeg', '.png', '.gif', '.svg', '.webp', '.ico', '.bmp',
    '.css', '.js', '.woff', '.woff2', '.ttf', '.eot',
    '.mp4', '.mp3', '.avi', '.mov', '.webm', '.wav',
    '.zip', '.tar', '.gz', '.tgz', '.bz2', '.7z', '.rar',
    '.exe', '.dmg', '.iso', '.msi', '.deb', '.rpm', '.apk',
)

# Crawl: path markers for non-content pages
SKIP_PATH_PATTERNS = (
    r'/(?:login|signin|signup|register|logout|auth)\b',
    r'/(?:api|graphql)/',
)

TRACKING_PARAMS = ('fbclid', 'gclid')
TRACKING_PREFIXES = ('utm_',)

SITEMAP_PATHS = ('/sitemap.xml', '/sitemap_index.xml')

REQUEST_TIMEOUT = 15.0
HTML_PROCESS_TIMEOUT = 5.0
FALLBACK_TEXT_LIMIT = 5000
DEFAULT_CRAWL_DELAY = 0.05
WATCHDOG_TIMEOUT = 600.0

DEFAULT_CACHE_TTL = 3600
DEFAULT_CACHE_NAMESPACE = "repograb"
DISK_CACHE_MAX_SIZE = 100 * 1024 * 1024
MEMORY_CACHE_MAX_SIZE = 50 * 1024 * 1024
EVICTION_TARGET = 0.8


@dataclass
class AcquireOptions:
    """Options for one acquire() call."""

    # Repository filters
    extensions: list[str] | None = None  # e.g. ['.py', '.md']; None = everything
    exclude_dirs: list[str] = field(default_factory=list)  # added to DEFAULT_EXCLUDE_DIRS
    ref: str | None = None  # explicit branch/tag; overrides the ref in the URL
    max_files: int = 1000

    # Output
    format: Literal['markdown', 'json'] = 'markdown'
    project_tree: bool = True
    line_numbers: bool = True

    # Crawl bounds
    max_depth: int = 2
    max_pages: int = 50
    ignore_robots: bool = False
    crawl_delay: float = DEFAULT_CRAWL_DELAY
    user_agent: str = USER_AGENT

    # Hosting API
    token: str | None = None
    use_api: bool = True
    allow_fallback: bool = True  # API failure -> git clone
    archive_format: Literal['zip', 'tarball'] = 'zip'

    # Cache
    no_cache: bool = False
    force_refresh: bool = False
    cache_ttl: int = DEFAULT_CACHE_TTL

    # Time limits (seconds)
    timeout: float = WATCHDOG_TIMEOUT
    request_timeout: float = REQUEST_TIMEOUT


def resolve_token(explicit: str | None = None) -> str | None:
    """Explicit token first, then the well-known environment variables."""
    if explicit:
        return explicit
    for name in TOKEN_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


def load_options(path: str | Path) -> AcquireOptions:
    """Load AcquireOptions from a JSON or YAML file."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Options file not found: {path}")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Options file must contain a mapping")
    return apply_overrides(AcquireOptions(), **data)


def apply_overrides(options: AcquireOptions, **overrides) -> AcquireOptions:
    """
    Return a copy of options with overrides applied.

    None values are ignored so unset CLI flags don't clobber file values.
    Unknown keys raise ValueError.
    """
    known = {f.name for f in fields(AcquireOptions)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown option(s): {', '.join(unknown)}")
    changes = {k: v for k, v in overrides.items() if v is not None}
    if isinstance(changes.get("extensions"), str):
        changes["extensions"] = _split_list(changes["extensions"])
    if isinstance(changes.get("exclude_dirs"), str):
        changes["exclude_dirs"] = _split_list(changes["exclude_dirs"])
    if changes.get("extensions"):
        changes["extensions"] = [_normalize_ext(e) for e in changes["extensions"]]
    return replace(options, **changes)


def _split_list(value: str) -> list[str]:
    return [v.strip() for v in value.split(',') if v.strip()]


def _normalize_ext(ext: str) -> str:
    ext = ext.strip()
    return ext if ext.startswith('.') else f'.{ext}'
