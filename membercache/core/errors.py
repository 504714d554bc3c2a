"""
Error taxonomy for member fetching and caching.

A member that is not in the guild is never an error: lookups return ``None``.
Transport failures are caught where a fetch happens and downgraded to stale
data when a cache entry exists; only :class:`CacheExhaustedError` reaches
callers as a hard failure.
"""

from typing import Optional


class MemberCacheError(Exception):
    """Base class for all membercache errors."""
    pass


class TransientAPIError(MemberCacheError):
    """Network or rate-limit failure reported by the platform API."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FetchTimeoutError(TransientAPIError):
    """A fetch exceeded its deadline."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:.1f}s")
        self.operation = operation
        self.timeout = timeout


class PlatformUnavailableError(MemberCacheError):
    """The platform client itself cannot serve requests (closed, not connected)."""
    pass


class CacheExhaustedError(MemberCacheError):
    """A fetch failed and no cached data exists to fall back on."""

    def __init__(self, guild_id: int, reason: Optional[BaseException] = None):
        detail = f": {reason}" if reason else ""
        super().__init__(f"No member data available for guild {guild_id}{detail}")
        self.guild_id = guild_id
        self.reason = reason


__all__ = [
    "MemberCacheError",
    "TransientAPIError",
    "FetchTimeoutError",
    "PlatformUnavailableError",
    "CacheExhaustedError",
]
