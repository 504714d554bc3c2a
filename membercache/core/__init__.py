"""
Core Utilities Module - Shared types for the member cache.

- Structured JSON logging
- Error taxonomy
- Member and cache data models
"""

from .errors import (
    CacheExhaustedError,
    FetchTimeoutError,
    MemberCacheError,
    PlatformUnavailableError,
    TransientAPIError,
)
from .logger import ComponentLogger, log_json, setup_logging
from .models import CacheEntry, FetchOutcome, MemberRecord

__all__ = [
    "CacheEntry",
    "CacheExhaustedError",
    "ComponentLogger",
    "FetchOutcome",
    "FetchTimeoutError",
    "MemberCacheError",
    "MemberRecord",
    "PlatformUnavailableError",
    "TransientAPIError",
    "log_json",
    "setup_logging",
]
