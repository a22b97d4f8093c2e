"""
Hashing utilities for cache entry identifiers.
"""

import hashlib


def hash_key(key: str, length: int = 32) -> str:
    """
    Hash a cache key into a stable, filesystem- and URL-safe identifier.

    Args:
        key: The cache key
        length: Length of returned hash (default 32 chars)

    Returns:
        Truncated SHA-256 hex digest
    """
    return hashlib.sha256(key.encode('utf-8', errors='replace')).hexdigest()[:length]
