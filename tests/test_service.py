"""
Member cache service tests - stats, invalidation, search and initialization.
"""

from types import SimpleNamespace

import pytest

from conftest import FakeGuild, make_member
from membercache.service import MemberCacheService, initialize_member_cache
from membercache.store import CacheStore


@pytest.mark.asyncio
class TestCacheStats:
    """Test get_cache_stats and is_cache_valid."""

    async def test_empty_stats(self, service):
        assert service.get_cache_stats() == {"total_guilds": 0, "guilds": []}

    async def test_stats_report_age_and_validity(self, service, guild, clock):
        await service.get_all_members(guild)
        clock.advance(125.7)

        stats = service.get_cache_stats()

        assert stats["total_guilds"] == 1
        guild_stats = stats["guilds"][0]
        assert guild_stats["guild_id"] == guild.id
        assert guild_stats["member_count"] == 4
        assert guild_stats["age_seconds"] == 125
        assert guild_stats["is_valid"] is True
        assert guild_stats["last_update"].endswith("Z")

    async def test_stats_mark_expired_entries(self, service, guild, clock):
        await service.get_all_members(guild)
        clock.advance(3600)

        guild_stats = service.get_cache_stats()["guilds"][0]

        assert guild_stats["is_valid"] is False
        assert not service.is_cache_valid(guild.id)

    async def test_is_cache_valid_unknown_guild(self, service):
        assert not service.is_cache_valid(12345)


@pytest.mark.asyncio
class TestClearCache:
    """Test manual invalidation."""

    async def test_clear_one_guild(self, service, source, guild):
        other = FakeGuild(guild_id=222)
        source.add(other.id, make_member(50))
        await service.get_all_members(guild)
        await service.get_all_members(other)

        assert service.clear_cache(guild.id) == 1

        assert not service.is_cache_valid(guild.id)
        assert service.is_cache_valid(other.id)

    async def test_clear_all(self, service, source, guild):
        await service.get_all_members(guild)

        assert service.clear_cache() == 1
        assert service.get_cache_stats()["total_guilds"] == 0

        await service.get_all_members(guild)
        assert len(source.fetch_all_calls) == 2


@pytest.mark.asyncio
class TestSearchMembers:
    """Test member search over the cached roster."""

    @pytest.fixture
    def named_source(self, source, guild):
        source.add(
            guild.id,
            make_member(501, username="arthas", display_name="Lich King"),
            make_member(502, username="jaina", global_name="Proudmoore"),
        )
        return source

    async def test_matches_username_case_insensitive(self, service, named_source, guild):
        results = await service.search_members(guild, "ARTH")

        assert [record.id for record in results] == [501]

    async def test_matches_display_and_global_name(self, service, named_source, guild):
        assert [r.id for r in await service.search_members(guild, "lich")] == [501]
        assert [r.id for r in await service.search_members(guild, "proud")] == [502]

    async def test_matches_member_id(self, service, named_source, guild):
        results = await service.search_members(guild, "502")

        assert [record.id for record in results] == [502]

    async def test_limit_and_empty_query(self, service, named_source, guild):
        assert await service.search_members(guild, "   ") == []
        assert len(await service.search_members(guild, "user", limit=2)) == 2


@pytest.mark.asyncio
class TestInitialization:
    """Test service construction helpers."""

    async def test_initialize_member_cache_warms(self, source, guild):
        service = await initialize_member_cache(SimpleNamespace(guilds=[guild]), source=source)

        assert isinstance(service, MemberCacheService)
        assert service.is_cache_valid(guild.id)

    async def test_injected_empty_store_is_shared(self, source, guild):
        shared = CacheStore()
        service = MemberCacheService(source=source, store=shared)

        await service.get_all_members(guild)

        assert service.store is shared
        assert service.source is source
        assert service.coordinator.store is shared
        assert service.resolver.store is shared
        assert len(shared) == 1

    async def test_partial_config_uses_defaults(self, source):
        service = MemberCacheService(source=source, config={"MEMBER_CACHE_TTL": 1000})

        assert service.coordinator.ttl == 1.0
        assert service.config["CHUNK_FETCH_SIZE"] == 1000
        assert service.config["MEMBER_FETCH_STRATEGY"] == "bulk"
