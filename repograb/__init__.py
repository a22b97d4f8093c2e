"""
Remote source acquisition and caching.

Primary interface:
    from repograb import acquire, AcquireOptions

    doc = acquire("https://github.com/owner/repo/tree/main")

    # Returns markdown with:
    # - a project tree
    # - every file in a fenced, line-numbered block
    # or a FetchResult when AcquireOptions(format='json')

Git repositories (GitHub, GitLab, Bitbucket) come from the hosting API's
archive endpoints with a git clone fallback; any other http(s) URL is
crawled breadth-first within depth and page bounds. Results are cached
per source + content-affecting options.
"""

from .cache import Cache, DiskCache, HttpCache, MemoryCache, create_cache
from .config import AcquireOptions, apply_overrides, load_options
from .crawler import CrawlerResult, CrawlOptions, WebCrawler
from .errors import (
    AcquireTimeout,
    ArchiveCorrupt,
    AuthRequired,
    CacheError,
    InvalidURL,
    NetworkError,
    NotFound,
    RateLimited,
    RepograbError,
)
from .files import FetchedFile
from .orchestrate import Deadline, acquire, fetch_files
from .result import FetchResult, FileNode
from .tar import TarDecoder, TarEntry, iter_tar_entries
from .urls import ParsedSource, parse_source, validate_url


__version__ = "0.1.0"

__all__ = [
    'acquire',
    'fetch_files',
    'Deadline',
    'AcquireOptions',
    'load_options',
    'apply_overrides',
    'ParsedSource',
    'parse_source',
    'validate_url',
    'Cache',
    'HttpCache',
    'DiskCache',
    'MemoryCache',
    'create_cache',
    'TarDecoder',
    'TarEntry',
    'iter_tar_entries',
    'WebCrawler',
    'CrawlOptions',
    'CrawlerResult',
    'FetchedFile',
    'FetchResult',
    'FileNode',
    'RepograbError',
    'InvalidURL',
    'AuthRequired',
    'NotFound',
    'RateLimited',
    'NetworkError',
    'AcquireTimeout',
    'ArchiveCorrupt',
    'CacheError',
]
