"""
Error types raised by repograb.

Every error carries a human-readable message suitable for showing to a user
("Private repository requires authentication" rather than "fetch failed").
"""

from __future__ import annotations

from datetime import datetime


class RepograbError(Exception):
    """Base class for all repograb errors."""

    code = "REPOGRAB_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidURL(RepograbError):
    """Raised when a source fails validation. Nothing is fetched."""

    code = "INVALID_URL"

    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid URL: {reason}")
        self.url = url
        self.reason = reason


class AuthRequired(RepograbError):
    """Raised when a private resource is requested without a credential."""

    code = "AUTH_REQUIRED"


class NotFound(RepograbError):
    """Raised when a repository or page does not exist."""

    code = "NOT_FOUND"


class RateLimited(RepograbError):
    """Raised when the hosting API is throttling requests."""

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        reset_at: datetime | None = None,
        remaining: int | None = None,
    ):
        super().__init__(message)
        self.reset_at = reset_at
        self.remaining = remaining


class NetworkError(RepograbError):
    """Raised on transport failures."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class AcquireTimeout(NetworkError):
    """Raised when the whole-operation watchdog expires."""

    code = "TIMEOUT"


class ArchiveCorrupt(RepograbError):
    """Raised when a tar or zip archive cannot be decoded."""

    code = "ARCHIVE_CORRUPT"


class CacheError(RepograbError):
    """Cache backend read/write failure. Always handled inside repograb."""

    code = "CACHE_ERROR"

    def __init__(self, message: str, operation: str, key: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.key = key


__all__ = [
    "RepograbError",
    "InvalidURL",
    "AuthRequired",
    "NotFound",
    "RateLimited",
    "NetworkError",
    "AcquireTimeout",
    "ArchiveCorrupt",
    "CacheError",
]
