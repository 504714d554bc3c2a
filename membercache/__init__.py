"""
membercache - Guild membership cache for community administration bots.

Sits between bot features and the Discord API: TTL caching, single-flight
full-guild fetches, stale-data fallback, role-scoped and point lookups.
"""

__version__ = "1.0.0"

from .core.errors import (
    CacheExhaustedError,
    FetchTimeoutError,
    MemberCacheError,
    PlatformUnavailableError,
    TransientAPIError,
)
from .core.models import CacheEntry, FetchOutcome, MemberRecord
from .service import MemberCacheService, initialize_member_cache
from .sources import DiscordMemberSource, MemberSource
from .store import CacheStore

__all__ = [
    "CacheEntry",
    "CacheExhaustedError",
    "CacheStore",
    "DiscordMemberSource",
    "FetchOutcome",
    "FetchTimeoutError",
    "MemberCacheError",
    "MemberCacheService",
    "MemberRecord",
    "MemberSource",
    "PlatformUnavailableError",
    "TransientAPIError",
    "initialize_member_cache",
]
