"""
Content cache with three interchangeable backends.

Usage:
    from repograb.cache import create_cache

    cache = create_cache("disk", ttl=600)
    cache.set("github:psf/requests|ref:main", {"kind": "files", "files": [...]})
    entry = cache.get("github:psf/requests|ref:main")
    if entry:
        entry.content

Backends:
- http:   edge platform response cache (synthetic JSON responses in a ResponseStore)
- disk:   one JSON file per entry under <tmp>/.repograb-cache/<namespace>/
- memory: in-process dict

Reads never raise: a corrupt, expired or dangling entry is deleted and
reported as absent. Writes raise CacheError on backend I/O failure.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from pathlib import Path
from typing import Any, Protocol

from requests.structures import CaseInsensitiveDict

from .config import (
    DEFAULT_CACHE_NAMESPACE,
    DEFAULT_CACHE_TTL,
    DISK_CACHE_MAX_SIZE,
    EVICTION_TARGET,
    MEMORY_CACHE_MAX_SIZE,
)
from .errors import CacheError
from .hasher import hash_key
from .log import get_logger

logger = get_logger("cache")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheMetadata:
    url: str
    fetched_at: str
    expires_at: str
    content_type: str | None = None

    def expires(self) -> datetime:
        return datetime.fromisoformat(self.expires_at)


@dataclass
class CacheEntry:
    """A cached payload plus its bookkeeping."""
    metadata: CacheMetadata
    content: Any = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _now()) >= self.metadata.expires()

    def is_dangling(self) -> bool:
        """True when the content points at a directory that no longer exists."""
        if isinstance(self.content, dict) and 'path' in self.content:
            return not Path(self.content['path']).exists()
        return False

    def to_dict(self) -> dict:
        meta = {
            'url': self.metadata.url,
            'fetched_at': self.metadata.fetched_at,
            'expires_at': self.metadata.expires_at,
        }
        if self.metadata.content_type:
            meta['content_type'] = self.metadata.content_type
        return {'metadata': meta, 'content': self.content}

    @classmethod
    def from_dict(cls, data: dict) -> 'CacheEntry':
        """Raises KeyError/TypeError/ValueError on malformed data."""
        meta = data['metadata']
        metadata = CacheMetadata(
            url=meta['url'],
            fetched_at=meta['fetched_at'],
            expires_at=meta['expires_at'],
            content_type=meta.get('content_type'),
        )
        metadata.expires()  # validates the timestamp
        return cls(metadata=metadata, content=data.get('content'))


class Cache(ABC):
    """Common contract for all cache backends."""

    backend = "base"

    def __init__(
        self,
        namespace: str = DEFAULT_CACHE_NAMESPACE,
        ttl: int = DEFAULT_CACHE_TTL,
        max_size: int | None = None,
    ):
        self.namespace = namespace
        self.ttl = ttl
        self.max_size = max_size

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None, content_type: str | None = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def stats(self) -> dict:
        ...

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def _make_entry(self, key: str, value: Any, ttl: int | None, content_type: str | None) -> CacheEntry:
        now = _now()
        ttl = self.ttl if ttl is None else ttl
        return CacheEntry(
            metadata=CacheMetadata(
                url=key,
                fetched_at=now.isoformat(),
                expires_at=(now + timedelta(seconds=ttl)).isoformat(),
                content_type=content_type,
            ),
            content=value,
        )

    @staticmethod
    def _usable(entry: CacheEntry) -> bool:
        return not entry.is_expired() and not entry.is_dangling()


# =============================================================================
# HTTP (edge platform) backend
# =============================================================================

@dataclass
class StoredResponse:
    body: str
    headers: dict[str, str] = field(default_factory=dict)
    status: int = 200


class ResponseStore(Protocol):
    """The platform cache object: responses keyed by request URL."""

    def match(self, url: str) -> StoredResponse | None: ...

    def put(self, url: str, response: StoredResponse) -> None: ...

    def delete(self, url: str) -> bool: ...


class InProcessResponseStore:
    """Dict-backed ResponseStore. Adds an Age header on match like a real edge cache."""

    def __init__(self):
        self._responses: dict[str, tuple[StoredResponse, float]] = {}
        self._lock = threading.Lock()

    def match(self, url: str) -> StoredResponse | None:
        with self._lock:
            item = self._responses.get(url)
        if item is None:
            return None
        response, stored_at = item
        headers = CaseInsensitiveDict(response.headers)
        headers['Age'] = str(int(time.time() - stored_at))
        return StoredResponse(body=response.body, headers=headers, status=response.status)

    def put(self, url: str, response: StoredResponse) -> None:
        with self._lock:
            self._responses[url] = (response, time.time())

    def delete(self, url: str) -> bool:
        with self._lock:
            return self._responses.pop(url, None) is not None


MAX_AGE_RE = re.compile(r'max-age=(\d+)')


class HttpCache(Cache):
    """Stores entries as synthetic HTTP responses in an edge cache."""

    backend = "http"

    def __init__(
        self,
        namespace: str = DEFAULT_CACHE_NAMESPACE,
        ttl: int = DEFAULT_CACHE_TTL,
        max_size: int | None = None,
        base_url: str = "https://cache.repograb.internal",
        store: ResponseStore | None = None,
    ):
        super().__init__(namespace, ttl, max_size)
        self.base_url = base_url.rstrip('/')
        self.store = store if store is not None else InProcessResponseStore()
        self._written: set[str] = set()

    def _request_url(self, key: str) -> str:
        return f"{self.base_url}/cache/{self.namespace}/{hash_key(key)}"

    def get(self, key: str) -> CacheEntry | None:
        url = self._request_url(key)
        try:
            response = self.store.match(url)
        except Exception as e:
            logger.warning("Edge cache lookup failed for %s: %s", key, e)
            return None
        if response is None:
            return None

        if self._response_stale(response):
            self._discard(url)
            return None

        try:
            entry = CacheEntry.from_dict(json.loads(response.body))
        except (ValueError, KeyError, TypeError) as e:
            logger.debug("Dropping corrupt edge cache entry %s: %s", key, e)
            self._discard(url)
            return None

        if not self._usable(entry):
            self._discard(url)
            return None
        return entry

    def _response_stale(self, response: StoredResponse) -> bool:
        headers = CaseInsensitiveDict(response.headers)
        now = _now()

        expires = headers.get('Expires')
        if expires:
            try:
                if parsedate_to_datetime(expires) <= now:
                    return True
            except (TypeError, ValueError):
                return True

        match = MAX_AGE_RE.search(headers.get('Cache-Control', ''))
        age = headers.get('Age')
        if match and age is not None:
            try:
                if int(age) > int(match.group(1)):
                    return True
            except ValueError:
                return True
        return False

    def _discard(self, url: str) -> None:
        try:
            self.store.delete(url)
        except Exception as e:
            logger.warning("Edge cache delete failed for %s: %s", url, e)
        self._written.discard(url)

    def set(self, key: str, value: Any, ttl: int | None = None, content_type: str | None = None) -> None:
        entry = self._make_entry(key, value, ttl, content_type)
        ttl = self.ttl if ttl is None else ttl
        now = _now()
        headers = {
            'Content-Type': 'application/json',
            'Cache-Control': f'public, max-age={ttl}',
            'Expires': format_datetime(entry.metadata.expires(), usegmt=True),
            'Date': format_datetime(now, usegmt=True),
        }
        url = self._request_url(key)
        try:
            body = json.dumps(entry.to_dict())
            self.store.put(url, StoredResponse(body=body, headers=headers))
        except Exception as e:
            raise CacheError(f"Edge cache write failed: {e}", operation="set", key=key) from e
        self._written.add(url)

    def delete(self, key: str) -> bool:
        url = self._request_url(key)
        self._written.discard(url)
        try:
            return bool(self.store.delete(url))
        except Exception as e:
            raise CacheError(f"Edge cache delete failed: {e}", operation="delete", key=key) from e

    def clear(self) -> None:
        # The platform has no bulk clear; drop what this instance wrote
        for url in list(self._written):
            self._discard(url)

    def stats(self) -> dict:
        return {
            'backend': self.backend,
            'namespace': self.namespace,
            'entries': len(self._written),
            'base_url': self.base_url,
        }


# =============================================================================
# Disk backend
# =============================================================================

class DiskCache(Cache):
    """One JSON file per entry, evicted least-recently-accessed first."""

    backend = "disk"

    def __init__(
        self,
        namespace: str = DEFAULT_CACHE_NAMESPACE,
        ttl: int = DEFAULT_CACHE_TTL,
        max_size: int | None = None,
        cache_dir: str | Path | None = None,
    ):
        super().__init__(namespace, ttl, max_size or DISK_CACHE_MAX_SIZE)
        root = Path(cache_dir) if cache_dir else Path(tempfile.gettempdir()) / ".repograb-cache"
        self.directory = root / namespace

    def _path(self, key: str) -> Path:
        return self.directory / f"{hash_key(key)}.json"

    def get(self, key: str) -> CacheEntry | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            entry = CacheEntry.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("Dropping unreadable cache file %s: %s", path.name, e)
            self._unlink(path)
            return None

        if not self._usable(entry):
            self._unlink(path)
            return None

        try:
            os.utime(path)
        except OSError:
            pass  # eviction order only
        return entry

    def set(self, key: str, value: Any, ttl: int | None = None, content_type: str | None = None) -> None:
        entry = self._make_entry(key, value, ttl, content_type)
        path = self._path(key)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w', encoding='utf-8', dir=self.directory, suffix='.tmp', delete=False
            ) as f:
                tmp_name = f.name
                json.dump(entry.to_dict(), f)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name:
                self._unlink(Path(tmp_name))
            raise CacheError(f"Failed to write cache file: {e}", operation="set", key=key) from e
        self._evict_if_needed()

    def _evict_if_needed(self) -> None:
        files = []
        for path in self.directory.glob('*.json'):
            try:
                st = path.stat()
            except OSError:
                continue
            files.append((st.st_atime, st.st_size, path))

        total = sum(size for _, size, _ in files)
        if total <= self.max_size:
            return

        target = self.max_size * EVICTION_TARGET
        removed = 0
        for _, size, path in sorted(files, key=lambda f: f[0]):
            if total <= target:
                break
            self._unlink(path)
            total -= size
            removed += 1
        logger.info("Disk cache evicted %d entries (%d bytes remain)", removed, total)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove cache file %s: %s", path, e)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise CacheError(f"Failed to delete cache file: {e}", operation="delete", key=key) from e
        return True

    def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob('*.json'):
            self._unlink(path)

    def stats(self) -> dict:
        sizes = []
        if self.directory.exists():
            for path in self.directory.glob('*.json'):
                try:
                    sizes.append(path.stat().st_size)
                except OSError:
                    continue
        return {
            'backend': self.backend,
            'namespace': self.namespace,
            'entries': len(sizes),
            'total_size': sum(sizes),
            'max_size': self.max_size,
            'directory': str(self.directory),
        }


# =============================================================================
# Memory backend
# =============================================================================

@dataclass
class _MemoryItem:
    entry: CacheEntry
    size: int
    last_access: float


class MemoryCache(Cache):
    """Process-local cache. Expiry is checked lazily; writes prune."""

    backend = "memory"

    def __init__(
        self,
        namespace: str = DEFAULT_CACHE_NAMESPACE,
        ttl: int = DEFAULT_CACHE_TTL,
        max_size: int | None = None,
    ):
        super().__init__(namespace, ttl, max_size or MEMORY_CACHE_MAX_SIZE)
        self._items: dict[str, _MemoryItem] = {}
        self._total = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            if not self._usable(item.entry):
                self._remove(key)
                return None
            item.last_access = time.monotonic()
            return item.entry

    def set(self, key: str, value: Any, ttl: int | None = None, content_type: str | None = None) -> None:
        entry = self._make_entry(key, value, ttl, content_type)
        try:
            size = len(json.dumps(entry.to_dict(), default=str))
        except (TypeError, ValueError) as e:
            raise CacheError(f"Value is not serializable: {e}", operation="set", key=key) from e

        with self._lock:
            self._prune_expired()
            self._remove(key)
            self._items[key] = _MemoryItem(entry, size, time.monotonic())
            self._total += size
            if self._total > self.max_size:
                self._evict()

    def _remove(self, key: str) -> bool:
        item = self._items.pop(key, None)
        if item is None:
            return False
        self._total -= item.size
        return True

    def _prune_expired(self) -> None:
        now = _now()
        for key in [k for k, item in self._items.items() if item.entry.is_expired(now)]:
            self._remove(key)

    def _evict(self) -> None:
        target = self.max_size * EVICTION_TARGET
        for key, _ in sorted(self._items.items(), key=lambda kv: kv[1].last_access):
            if self._total <= target:
                break
            self._remove(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._remove(key)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._total = 0

    def stats(self) -> dict:
        with self._lock:
            return {
                'backend': self.backend,
                'namespace': self.namespace,
                'entries': len(self._items),
                'total_size': self._total,
                'max_size': self.max_size,
            }


BACKENDS = {
    'http': HttpCache,
    'disk': DiskCache,
    'memory': MemoryCache,
}


def create_cache(backend: str = "disk", **options) -> Cache:
    """
    Build a cache backend by name.

    Args:
        backend: "http", "disk" or "memory"
        **options: namespace, ttl, max_size, plus backend-specific
                   cache_dir (disk) or base_url/store (http)
    """
    try:
        cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown cache backend: {backend!r} (expected one of {', '.join(BACKENDS)})"
        ) from None
    return cls(**options)


__all__ = [
    'Cache',
    'CacheEntry',
    'CacheMetadata',
    'HttpCache',
    'DiskCache',
    'MemoryCache',
    'ResponseStore',
    'InProcessResponseStore',
    'StoredResponse',
    'create_cache',
]
