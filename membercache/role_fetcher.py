"""
Role-scoped member fetching.

Each requested role runs its own full enumeration and filters locally. These
fetches do not join the single-flight marker used by full-guild requests, so
a role query issued while a full fetch is in flight produces a second fetch.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Union

from .core.errors import CacheExhaustedError, MemberCacheError, TransientAPIError
from .core.logger import ComponentLogger
from .core.models import MemberRecord
from .sources import MemberSource
from .store import CacheStore

_logger = ComponentLogger("role_fetcher")


def normalize_role_ids(role_ids: Union[int, Iterable[int]]) -> List[int]:
    """Accept a single role id or an iterable; drop duplicates, keep order."""
    if isinstance(role_ids, (int, str)):
        return [role_ids]
    return list(dict.fromkeys(role_ids))


class RoleScopedFetcher:
    """Returns the deduplicated union of members holding any requested role."""

    def __init__(self, store: CacheStore, source: MemberSource, config: Mapping[str, Any]):
        self.store = store
        self.source = source
        self._config = config

    async def get_members_by_role(
        self, guild: Any, role_ids: Union[int, Iterable[int]]
    ) -> Dict[int, MemberRecord]:
        """
        Fetch members holding at least one of ``role_ids``.

        Args:
            guild: Guild object
            role_ids: One role id or several

        Returns:
            Mapping of member id to record, one entry per member

        Raises:
            CacheExhaustedError: The operation failed and the guild has no cache entry
        """
        roles = normalize_role_ids(role_ids)
        _logger.debug("role_members_requested", guild_id=guild.id, role_ids=roles)

        try:
            results = await asyncio.gather(
                *(self._fetch_role(guild, role_id) for role_id in roles),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        except MemberCacheError as e:
            entry = self.store.get(guild.id)
            if entry is None:
                _logger.error("role_fetch_exhausted", guild_id=guild.id,
                              error_type=type(e).__name__, error_msg=str(e))
                raise CacheExhaustedError(guild.id, e) from e

            _logger.warning("role_fetch_cache_fallback", guild_id=guild.id,
                            error_type=type(e).__name__, error_msg=str(e))
            return {
                member_id: record
                for member_id, record in entry.members.items()
                if record.has_any_role(roles)
            }

        merged: Dict[int, MemberRecord] = {}
        for role_members in results:
            for member_id, record in role_members.items():
                merged.setdefault(member_id, record)

        _logger.info("role_members_fetched", guild_id=guild.id,
                     role_count=len(roles), member_count=len(merged))
        return merged

    async def _fetch_role(self, guild: Any, role_id: int) -> Dict[int, MemberRecord]:
        timeout = self._config["MEMBER_FETCH_TIMEOUT"] / 1000
        try:
            members = await self.source.fetch_all(guild, timeout)
        except TransientAPIError as e:
            _logger.warning("role_fetch_failed", guild_id=guild.id, role_id=role_id,
                            error_type=type(e).__name__, error_msg=str(e))
            return {}

        return {
            member_id: record
            for member_id, record in members.items()
            if record.has_role(role_id)
        }
