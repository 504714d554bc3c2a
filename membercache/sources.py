"""
Member sources - the platform API seen by the cache layer.

``MemberSource`` is the contract the cache relies on: bulk enumeration, paged
enumeration, single and batch lookups, each bounded by a deadline, with
"member not found" reported as ``None`` rather than an exception.
``DiscordMemberSource`` implements it on top of py-cord.
"""

import asyncio
from typing import Any, Awaitable, Dict, Iterable, List, Optional, TypeVar

import aiohttp
import discord

from .core.errors import (
    FetchTimeoutError,
    MemberCacheError,
    PlatformUnavailableError,
    TransientAPIError,
)
from .core.logger import ComponentLogger
from .core.models import MemberRecord

T = TypeVar("T")

QUERY_MEMBERS_MAX_IDS = 100

_logger = ComponentLogger("member_source")


async def deadline(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await ``awaitable`` with a deadline.

    Raises:
        FetchTimeoutError: If the deadline passes first
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise FetchTimeoutError(operation, timeout) from None


class MemberSource:
    """Abstract platform client used by the cache."""

    async def fetch_all(self, guild: Any, timeout: float) -> Dict[int, MemberRecord]:
        """Enumerate every member of ``guild``."""
        raise NotImplementedError

    async def fetch_page(
        self, guild: Any, limit: int, after: Optional[int], timeout: float
    ) -> Dict[int, MemberRecord]:
        """Enumerate up to ``limit`` members with ids greater than ``after``."""
        raise NotImplementedError

    async def fetch_one(self, guild: Any, member_id: int, timeout: float) -> Optional[MemberRecord]:
        """Fetch one member, or None if they are not in the guild."""
        raise NotImplementedError

    async def fetch_many(
        self, guild: Any, member_ids: Iterable[int], timeout: float
    ) -> Dict[int, MemberRecord]:
        """Fetch several members; ids not in the guild are absent from the result."""
        raise NotImplementedError


class DiscordMemberSource(MemberSource):
    """
    py-cord backed member source.

    Requires the ``members`` privileged intent. Discord errors are translated
    into the cache's error taxonomy:

    - ``discord.NotFound`` -> ``None`` for point lookups
    - ``discord.HTTPException`` and network errors -> ``TransientAPIError``
    - ``discord.ClientException``, ``discord.GatewayNotFound`` and
      ``discord.ConnectionClosed`` -> ``PlatformUnavailableError``
    """

    async def _call(self, awaitable: Awaitable[T], timeout: float, operation: str) -> T:
        try:
            return await deadline(awaitable, timeout, operation)
        except discord.HTTPException as e:
            raise TransientAPIError(f"{operation} failed: {e}", status=e.status) from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransientAPIError(f"{operation} failed: {e}") from e
        except (discord.ClientException, discord.GatewayNotFound, discord.ConnectionClosed) as e:
            raise PlatformUnavailableError(f"{operation} unavailable: {e}") from e

    async def fetch_all(self, guild: Any, timeout: float) -> Dict[int, MemberRecord]:
        async def collect() -> Dict[int, MemberRecord]:
            return {
                member.id: MemberRecord.from_discord(member)
                async for member in guild.fetch_members(limit=None)
            }

        return await self._call(collect(), timeout, "fetch_all")

    async def fetch_page(
        self, guild: Any, limit: int, after: Optional[int], timeout: float
    ) -> Dict[int, MemberRecord]:
        async def collect() -> Dict[int, MemberRecord]:
            marker = discord.Object(id=after) if after else None
            return {
                member.id: MemberRecord.from_discord(member)
                async for member in guild.fetch_members(limit=limit, after=marker)
            }

        return await self._call(collect(), timeout, "fetch_page")

    async def fetch_one(self, guild: Any, member_id: int, timeout: float) -> Optional[MemberRecord]:
        async def lookup() -> Optional[MemberRecord]:
            try:
                member = await guild.fetch_member(member_id)
            except discord.NotFound:
                return None
            return MemberRecord.from_discord(member)

        return await self._call(lookup(), timeout, "fetch_one")

    async def fetch_many(
        self, guild: Any, member_ids: Iterable[int], timeout: float
    ) -> Dict[int, MemberRecord]:
        """
        Query members in batches of :data:`QUERY_MEMBERS_MAX_IDS` sharing one deadline.

        A failed batch is logged and skipped; records from the other batches are
        still returned. The first error is raised only when every batch failed.
        """
        ids = list(member_ids)
        if not ids:
            return {}

        loop = asyncio.get_running_loop()
        expires_at = loop.time() + timeout
        found: Dict[int, MemberRecord] = {}
        errors: List[MemberCacheError] = []

        batches = [ids[start:start + QUERY_MEMBERS_MAX_IDS] for start in range(0, len(ids), QUERY_MEMBERS_MAX_IDS)]
        for index, batch in enumerate(batches):
            try:
                remaining = expires_at - loop.time()
                if remaining <= 0:
                    raise FetchTimeoutError("fetch_many", timeout)
                members = await self._call(
                    guild.query_members(user_ids=batch, limit=len(batch), cache=True),
                    remaining,
                    "fetch_many",
                )
            except MemberCacheError as e:
                _logger.warning("member_batch_failed", batch_index=index, batch_size=len(batch),
                                error_type=type(e).__name__, error_msg=str(e))
                errors.append(e)
                continue
            for member in members:
                found[member.id] = MemberRecord.from_discord(member)

        if len(errors) == len(batches):
            raise errors[0]
        _logger.debug("members_queried", requested=len(ids), found=len(found), failed_batches=len(errors))
        return found


__all__ = ["MemberSource", "DiscordMemberSource", "deadline", "QUERY_MEMBERS_MAX_IDS"]
