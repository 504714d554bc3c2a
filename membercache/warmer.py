"""
Startup cache population and background refreshes.

Small guilds are fetched one after another and awaited; large guilds (when
large-guild mode is on) are fetched in background tasks so a single huge
roster does not hold up the rest of startup.
"""

import asyncio
from typing import Any, Optional, Set

from .core.logger import ComponentLogger
from .core.models import FRESH
from .single_flight import SingleFlightCoordinator

_logger = ComponentLogger("warmer")


class CacheWarmer:
    """Runs warm-up and refresh fetches through the single-flight coordinator."""

    def __init__(self, coordinator: SingleFlightCoordinator):
        self.coordinator = coordinator
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def warm_cache(self, client: Any) -> None:
        """
        Populate the cache for every guild the client knows.

        Args:
            client: py-cord client/bot exposing ``guilds``
        """
        guilds = list(client.guilds)
        _logger.info("cache_warming_started", guild_count=len(guilds))

        for guild in guilds:
            try:
                is_large = self.coordinator.is_large_guild(guild)
                _logger.info("guild_warming",
                    guild_id=guild.id,
                    guild_name=getattr(guild, "name", None),
                    member_count=getattr(guild, "member_count", None),
                    large_guild=is_large,
                )

                if is_large:
                    self._spawn(guild, "background_fetch_failed")
                else:
                    outcome = await self.coordinator.get_all_members(guild, force=True)
                    if not outcome.ok:
                        _logger.warning("guild_warming_failed", guild_id=guild.id,
                                        error_msg=str(outcome.error))
            except Exception as e:
                _logger.error("guild_warming_error", guild_id=guild.id,
                              error_type=type(e).__name__, error_msg=str(e))

        _logger.info("cache_warming_initiated", guild_count=len(guilds),
                     background_tasks=self.pending_tasks)

    def refresh_cache(self, guild: Any) -> asyncio.Task:
        """Rerun the full fetch for ``guild`` in the background."""
        _logger.debug("cache_refresh_scheduled", guild_id=guild.id)
        return self._spawn(guild, "cache_refresh_failed")

    def _spawn(self, guild: Any, failure_event: str) -> asyncio.Task:
        task = asyncio.ensure_future(self._background_fetch(guild, failure_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _background_fetch(self, guild: Any, failure_event: str) -> None:
        try:
            outcome = await self.coordinator.get_all_members(guild, force=True)
        except Exception as e:
            _logger.warning(failure_event, guild_id=guild.id,
                            error_type=type(e).__name__, error_msg=str(e))
            return

        if outcome.status != FRESH:
            _logger.warning(failure_event, guild_id=guild.id, status=outcome.status,
                            error_type=type(outcome.error).__name__, error_msg=str(outcome.error))

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        """Wait, bounded by ``timeout``, for pending background fetches."""
        tasks = [task for task in self._tasks if not task.done()]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            _logger.warning("background_tasks_wait_timeout", pending=len(pending), timeout_seconds=timeout)
