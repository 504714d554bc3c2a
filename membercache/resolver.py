"""
Point and batch member lookups, cache-first with fetch-and-upsert on miss.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from .core.errors import CacheExhaustedError, MemberCacheError
from .core.logger import ComponentLogger
from .core.models import MemberRecord
from .sources import MemberSource
from .store import CacheStore

_logger = ComponentLogger("resolver")


class MemberResolver:
    """Resolves members by id without enumerating the whole guild."""

    def __init__(self, store: CacheStore, source: MemberSource, config: Mapping[str, Any]):
        self.store = store
        self.source = source
        self._config = config

    @property
    def ttl(self) -> float:
        return self._config["MEMBER_CACHE_TTL"] / 1000

    @property
    def timeout(self) -> float:
        return self._config["MEMBER_FETCH_TIMEOUT"] / 1000

    def _valid_members(self, guild_id: int) -> Mapping[int, MemberRecord]:
        entry = self.store.get(guild_id)
        if not self.store.is_entry_valid(entry, self.ttl):
            return {}
        return entry.members

    async def get_member(self, guild: Any, member_id: int) -> Optional[MemberRecord]:
        """
        Resolve one member.

        Args:
            guild: Guild object
            member_id: Discord user ID

        Returns:
            The member record, or None if the user is not in the guild

        Raises:
            CacheExhaustedError: The lookup failed and no cached copy of the member exists
        """
        cached = self._valid_members(guild.id).get(member_id)
        if cached is not None:
            return cached

        try:
            record = await self.source.fetch_one(guild, member_id, self.timeout)
        except MemberCacheError as e:
            entry = self.store.get(guild.id)
            stale = entry.members.get(member_id) if entry is not None else None
            if stale is None:
                raise CacheExhaustedError(guild.id, e) from e
            _logger.warning("stale_member_served", guild_id=guild.id, member_id=member_id,
                            error_type=type(e).__name__, error_msg=str(e))
            return stale

        if record is None:
            _logger.debug("member_not_found", guild_id=guild.id, member_id=member_id)
            return None

        if self.store.upsert(guild.id, [record]):
            _logger.debug("member_upserted", guild_id=guild.id, member_id=member_id)
        return record

    async def get_members_batch(self, guild: Any, member_ids: Iterable[int]) -> Dict[int, MemberRecord]:
        """
        Resolve several members with at most one batched fetch.

        Ids that are not in the guild, or that could not be fetched, are simply
        absent from the result.
        """
        requested = list(dict.fromkeys(member_ids))
        cached = self._valid_members(guild.id)
        found = {member_id: cached[member_id] for member_id in requested if member_id in cached}

        missing = [member_id for member_id in requested if member_id not in found]
        if not missing:
            _logger.debug("batch_cache_hit", guild_id=guild.id, member_count=len(found))
            return found

        try:
            fetched = await self.source.fetch_many(guild, missing, self.timeout)
        except MemberCacheError as e:
            _logger.warning("batch_fetch_failed", guild_id=guild.id, missing_count=len(missing),
                            error_type=type(e).__name__, error_msg=str(e))
            return found

        missing_set = set(missing)
        records = [record for member_id, record in fetched.items() if member_id in missing_set]
        self.store.upsert(guild.id, records)
        for record in records:
            found[record.id] = record

        _logger.debug("batch_resolved", guild_id=guild.id, requested=len(requested),
                      from_cache=len(requested) - len(missing), fetched=len(records))
        return found
