"""
Repository file filtering and collection.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .config import DEFAULT_EXCLUDE_DIRS
from .log import get_logger

logger = get_logger("files")

# Bytes sniffed for a NUL to decide a file is binary
BINARY_SNIFF_BYTES = 8192


@dataclass
class FetchedFile:
    """One repository file: path relative to the repo root, full text content."""
    path: str
    content: str

    @property
    def size(self) -> int:
        return len(self.content.encode('utf-8'))

    def to_dict(self) -> dict:
        return {'path': self.path, 'content': self.content}

    @classmethod
    def from_dict(cls, data: dict) -> 'FetchedFile':
        return cls(path=data['path'], content=data['content'])


@dataclass
class FileFilters:
    extensions: list[str] | None = None
    exclude_dirs: set[str] = field(default_factory=lambda: set(DEFAULT_EXCLUDE_DIRS))
    max_files: int = 1000

    @classmethod
    def from_options(cls, options) -> 'FileFilters':
        return cls(
            extensions=[e.lower() for e in options.extensions] if options.extensions else None,
            exclude_dirs=set(DEFAULT_EXCLUDE_DIRS) | set(options.exclude_dirs or ()),
            max_files=options.max_files,
        )

    def is_excluded(self, rel_path: str) -> bool:
        parts = PurePosixPath(rel_path).parts[:-1]
        return any(part in self.exclude_dirs for part in parts)

    def matches_extension(self, rel_path: str) -> bool:
        if not self.extensions:
            return True
        return PurePosixPath(rel_path).suffix.lower() in self.extensions

    def accepts(self, rel_path: str) -> bool:
        return (
            is_safe_path(rel_path)
            and not self.is_excluded(rel_path)
            and self.matches_extension(rel_path)
        )


def is_safe_path(rel_path: str) -> bool:
    """Reject absolute paths, drive letters and '..' segments."""
    if not rel_path or rel_path.startswith(('/', '\\')):
        return False
    if len(rel_path) > 1 and rel_path[1] == ':':
        return False
    parts = rel_path.replace('\\', '/').split('/')
    return '..' not in parts


def strip_root_prefix(name: str, prefix: str | None) -> str:
    """Drop the archive's top-level '<owner>-<repo>-<sha>/' directory."""
    if prefix and name.startswith(prefix):
        return name[len(prefix):]
    return name


def root_prefix(first_name: str) -> str | None:
    """'owner-repo-abc123/README.md' -> 'owner-repo-abc123/'."""
    head, sep, _ = first_name.partition('/')
    return f"{head}/" if sep else None


def decode_text(data: bytes) -> str | None:
    """Decode file bytes as text; None for binary content."""
    if b'\x00' in data[:BINARY_SNIFF_BYTES]:
        return None
    return data.decode('utf-8', errors='replace')


def collect_files(directory: str | Path, filters: FileFilters) -> list[FetchedFile]:
    """
    Walk a checked-out or extracted repository and read its text files.

    Excluded directories are pruned, binary files skipped, and collection
    stops at filters.max_files. Paths come back sorted and '/'-separated.
    """
    root = Path(directory)
    files: list[FetchedFile] = []
    skipped = 0

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in filters.exclude_dirs)
        for filename in sorted(filenames):
            full = Path(dirpath) / filename
            rel = full.relative_to(root).as_posix()
            if not filters.accepts(rel) or full.is_symlink():
                skipped += 1
                continue
            if len(files) >= filters.max_files:
                logger.info("Reached max_files=%d, stopping collection", filters.max_files)
                logger.debug("Collected %d files, skipped %d", len(files), skipped)
                return files
            try:
                text = decode_text(full.read_bytes())
            except OSError as e:
                logger.warning("Could not read %s: %s", rel, e)
                skipped += 1
                continue
            if text is None:
                skipped += 1
                continue
            files.append(FetchedFile(path=rel, content=text))

    logger.debug("Collected %d files, skipped %d", len(files), skipped)
    return files


__all__ = [
    'FetchedFile',
    'FileFilters',
    'is_safe_path',
    'strip_root_prefix',
    'root_prefix',
    'decode_text',
    'collect_files',
]
