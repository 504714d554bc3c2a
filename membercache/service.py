"""
Member Cache Service - Guild membership cache shared by all bot features.

Provides one entry point over the cache components:
- Full-guild reads with TTL caching and single-flight fetching
- Role-scoped reads with per-role failure isolation
- Point and batch lookups with fetch-and-upsert
- Startup warming and background refresh
- Introspection and manual invalidation

One instance is created at startup and handed to every collaborator.
"""

import asyncio
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .config import resolve_config
from .core.errors import CacheExhaustedError
from .core.logger import ComponentLogger
from .core.models import FetchOutcome, MemberRecord
from .resolver import MemberResolver
from .role_fetcher import RoleScopedFetcher
from .single_flight import SingleFlightCoordinator
from .sources import DiscordMemberSource, MemberSource
from .store import CacheStore
from .warmer import CacheWarmer

DEFAULT_SEARCH_LIMIT = 25


class MemberCacheService:
    """Facade over the membership cache components."""

    def __init__(
        self,
        source: Optional[MemberSource] = None,
        config: Optional[Mapping[str, Any]] = None,
        store: Optional[CacheStore] = None,
    ):
        """
        Initialize the service.

        Args:
            source: Platform member source (defaults to py-cord)
            config: Configuration mapping; missing keys use defaults
            store: Cache store to share (a new one is created if omitted)
        """
        self.config = resolve_config(config)
        self.source = source if source is not None else DiscordMemberSource()
        self.store = store if store is not None else CacheStore()

        self.coordinator = SingleFlightCoordinator(self.store, self.source, self.config)
        self.role_fetcher = RoleScopedFetcher(self.store, self.source, self.config)
        self.resolver = MemberResolver(self.store, self.source, self.config)
        self.warmer = CacheWarmer(self.coordinator)
        self._logger = ComponentLogger("member_cache")

        self._logger.info("member_cache_initialized",
            cache_ttl_seconds=self.config["MEMBER_CACHE_TTL"] / 1000,
            chunk_size=self.config["CHUNK_FETCH_SIZE"],
            large_guild_mode=self.config["LARGE_GUILD_MODE"],
            fetch_strategy=self.config["MEMBER_FETCH_STRATEGY"],
        )

    # #################################################################################### #
    #                            Read API
    # #################################################################################### #
    async def fetch_all_members(self, guild: Any, force: bool = False) -> FetchOutcome:
        """Full-guild read returning the typed outcome (fresh, stale or failed)."""
        return await self.coordinator.get_all_members(guild, force=force)

    async def get_all_members(self, guild: Any, force: bool = False) -> Mapping[int, MemberRecord]:
        """
        Get every member of a guild.

        Args:
            guild: Guild object
            force: Bypass the TTL check

        Returns:
            Mapping of member id to record (possibly stale after a failed refresh)

        Raises:
            CacheExhaustedError: The fetch failed and nothing was cached
        """
        outcome = await self.fetch_all_members(guild, force=force)
        if not outcome.ok:
            raise CacheExhaustedError(guild.id, outcome.error) from outcome.error
        return outcome.members

    async def get_members_by_role(
        self, guild: Any, role_ids: Union[int, Iterable[int]]
    ) -> Dict[int, MemberRecord]:
        return await self.role_fetcher.get_members_by_role(guild, role_ids)

    async def get_member(self, guild: Any, member_id: int) -> Optional[MemberRecord]:
        return await self.resolver.get_member(guild, member_id)

    async def get_members_batch(self, guild: Any, member_ids: Iterable[int]) -> Dict[int, MemberRecord]:
        return await self.resolver.get_members_batch(guild, member_ids)

    async def search_members(self, guild: Any, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[MemberRecord]:
        """
        Case-insensitive search on username, display name and global name.

        The member id is matched as a plain substring.
        """
        query = (query or "").strip()
        if not query or limit <= 0:
            return []

        needle = query.lower()
        matches = []
        for member_id, record in (await self.get_all_members(guild)).items():
            names = (record.username, record.display_name, record.global_name or "")
            if any(needle in name.lower() for name in names) or query in str(member_id):
                matches.append(record)
                if len(matches) >= limit:
                    break
        return matches

    # #################################################################################### #
    #                            Warming and Refresh
    # #################################################################################### #
    async def warm_cache(self, client: Any) -> None:
        await self.warmer.warm_cache(client)

    def refresh_cache(self, guild: Any) -> asyncio.Task:
        return self.warmer.refresh_cache(guild)

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        await self.warmer.wait_for_background_tasks(timeout)

    # #################################################################################### #
    #                            Stats and Admin
    # #################################################################################### #
    def is_cache_valid(self, guild_id: int) -> bool:
        return self.store.is_valid(guild_id, self.coordinator.ttl)

    def clear_cache(self, guild_id: Optional[int] = None) -> int:
        """
        Invalidate one guild's entry, or all entries.

        Returns:
            Number of entries removed
        """
        removed = self.store.invalidate(guild_id)
        if guild_id is None:
            self._logger.info("cache_cleared", scope="all", removed=removed)
        else:
            self._logger.debug("cache_cleared", scope="guild", guild_id=guild_id, removed=removed)
        return removed

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Per-guild cache statistics.

        Returns:
            ``{"total_guilds": int, "guilds": [{"guild_id", "member_count",
            "last_update", "age_seconds", "is_valid"}, ...]}``
        """
        ttl = self.coordinator.ttl
        guilds = []
        for guild_id in self.store.guild_ids():
            entry = self.store.get(guild_id)
            if entry is None:
                continue
            age = self.store.entry_age(entry)
            guilds.append({
                "guild_id": guild_id,
                "member_count": len(entry.members),
                "last_update": entry.updated_at.isoformat().replace("+00:00", "Z"),
                "age_seconds": int(math.floor(age)),
                "is_valid": age < ttl,
            })

        return {"total_guilds": len(guilds), "guilds": guilds}


async def initialize_member_cache(
    client: Any,
    source: Optional[MemberSource] = None,
    config: Optional[Mapping[str, Any]] = None,
) -> MemberCacheService:
    """Create the service and warm it for every guild ``client`` knows (call once at startup)."""
    service = MemberCacheService(source=source, config=config)
    await service.warm_cache(client)
    return service
