"""
Single-flight coordination of full-guild member fetches.

At most one full fetch runs per guild. The first caller to claim a guild
starts the fetch as its own task and publishes a shared pending result;
every concurrent caller awaits that same result. The fetch keeps running
when the caller that started it is cancelled, since others may be attached.
"""

import asyncio
import concurrent.futures
import threading
import time
from typing import Any, Dict, Mapping, Set

from .core.errors import MemberCacheError
from .core.logger import ComponentLogger
from .core.models import FetchOutcome, MemberRecord
from .sources import MemberSource, deadline
from .store import CacheStore

_logger = ComponentLogger("single_flight")


class SingleFlightCoordinator:
    """Deduplicates concurrent full-guild fetches and applies stale fallback."""

    CHUNK_DELAY = 0.1

    def __init__(self, store: CacheStore, source: MemberSource, config: Mapping[str, Any]):
        """
        Args:
            store: Shared cache store
            source: Platform member source
            config: Resolved configuration mapping
        """
        self.store = store
        self.source = source
        self._config = config
        self._inflight: Dict[int, concurrent.futures.Future] = {}
        self._inflight_lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def ttl(self) -> float:
        """Cache TTL in seconds."""
        return self._config["MEMBER_CACHE_TTL"] / 1000

    def is_large_guild(self, guild: Any) -> bool:
        if not self._config["LARGE_GUILD_MODE"]:
            return False
        return (getattr(guild, "member_count", None) or 0) > self._config["LARGE_GUILD_THRESHOLD"]

    def fetch_timeout(self, guild: Any) -> float:
        """Deadline in seconds for a full fetch of ``guild``."""
        if self.is_large_guild(guild):
            return self._config["LARGE_GUILD_FETCH_TIMEOUT"] / 1000
        return self._config["MEMBER_FETCH_TIMEOUT"] / 1000

    def is_fetch_in_progress(self, guild_id: int) -> bool:
        with self._inflight_lock:
            return guild_id in self._inflight

    async def get_all_members(self, guild: Any, force: bool = False) -> FetchOutcome:
        """
        Return the guild's members, fetching at most once concurrently.

        Args:
            guild: Guild object (``id``, ``name``, ``member_count``)
            force: Skip the freshness check

        Returns:
            ``fresh`` outcome on cache hit or successful fetch, ``stale`` when the
            fetch failed but older data exists, ``failed`` otherwise
        """
        guild_id = guild.id

        if not force:
            entry = self.store.get(guild_id)
            if self.store.is_entry_valid(entry, self.ttl):
                _logger.debug("members_cache_hit", guild_id=guild_id, member_count=len(entry.members))
                return FetchOutcome.fresh(guild_id, entry.members)

        with self._inflight_lock:
            pending = self._inflight.get(guild_id)
            claimed = pending is None
            if claimed:
                pending = concurrent.futures.Future()
                self._inflight[guild_id] = pending

        if claimed:
            task = asyncio.ensure_future(self._run_inflight(guild, pending))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            _logger.debug("members_fetch_joined", guild_id=guild_id)

        return await asyncio.shield(asyncio.wrap_future(pending))

    async def _run_inflight(self, guild: Any, pending: concurrent.futures.Future) -> None:
        try:
            outcome = await self._fetch_and_store(guild)
        except asyncio.CancelledError:
            pending.cancel()
            raise
        except Exception as e:
            _logger.error("members_fetch_crashed", guild_id=guild.id,
                          error_type=type(e).__name__, error_msg=str(e))
            pending.set_exception(e)
        else:
            pending.set_result(outcome)
        finally:
            with self._inflight_lock:
                if self._inflight.get(guild.id) is pending:
                    del self._inflight[guild.id]

    async def _fetch_and_store(self, guild: Any) -> FetchOutcome:
        guild_id = guild.id
        timeout = self.fetch_timeout(guild)
        start_time = time.monotonic()

        try:
            if self._config["MEMBER_FETCH_STRATEGY"] == "chunked":
                members = await self._chunked_fetch(guild, timeout)
            else:
                members = await self.source.fetch_all(guild, timeout)
        except MemberCacheError as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            entry = self.store.get(guild_id)
            if entry is not None:
                _logger.warning("stale_cache_served",
                    guild_id=guild_id,
                    guild_name=getattr(guild, "name", None),
                    duration_ms=duration_ms,
                    member_count=len(entry.members),
                    cache_age_seconds=int(self.store.entry_age(entry)),
                    error_type=type(e).__name__,
                    error_msg=str(e),
                )
                return FetchOutcome.stale(guild_id, entry.members, e)

            _logger.error("members_fetch_failed",
                guild_id=guild_id,
                guild_name=getattr(guild, "name", None),
                duration_ms=duration_ms,
                error_type=type(e).__name__,
                error_msg=str(e),
            )
            return FetchOutcome.failed(guild_id, e)

        entry = self.store.set(guild_id, members)
        _logger.info("members_fetched",
            guild_id=guild_id,
            guild_name=getattr(guild, "name", None),
            member_count=len(entry.members),
            duration_ms=int((time.monotonic() - start_time) * 1000),
            large_guild=self.is_large_guild(guild),
        )
        return FetchOutcome.fresh(guild_id, entry.members)

    async def _chunked_fetch(self, guild: Any, timeout: float) -> Dict[int, MemberRecord]:
        """
        Enumerate the guild page by page under one deadline for the whole walk.

        Any page failure, or running past ``timeout``, aborts the whole fetch
        so a partial roster is never stored.
        """
        return await deadline(self._page_through(guild, timeout), timeout, "chunked_fetch")

    async def _page_through(self, guild: Any, timeout: float) -> Dict[int, MemberRecord]:
        chunk_size = self._config["CHUNK_FETCH_SIZE"]
        members: Dict[int, MemberRecord] = {}
        after = None
        iteration = 0

        while True:
            page = await self.source.fetch_page(guild, chunk_size, after, timeout)
            if not page:
                break

            members.update(page)
            iteration += 1
            last_id = max(page)
            _logger.debug("chunk_fetched", guild_id=guild.id, chunk=iteration,
                          chunk_size=len(page), total=len(members))

            if len(page) < chunk_size or (after is not None and last_id <= after):
                break
            after = last_id
            await asyncio.sleep(self.CHUNK_DELAY)

        _logger.info("chunked_fetch_complete", guild_id=guild.id,
                     member_count=len(members), chunks=iteration)
        return members
