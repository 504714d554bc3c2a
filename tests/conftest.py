"""
Pytest configuration and fixtures for member cache tests.
"""

import asyncio
import os
import sys
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

import pytest

os.environ.setdefault("PRODUCTION", "False")

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from membercache.core.models import MemberRecord
from membercache.service import MemberCacheService
from membercache.sources import MemberSource, deadline
from membercache.store import CacheStore


class FakeGuild:
    """Minimal guild object (id, name, member_count)."""

    def __init__(self, guild_id: int = 111, name: str = "Test Guild", member_count: int = 100):
        self.id = guild_id
        self.name = name
        self.member_count = member_count

    def __repr__(self):
        return f"<FakeGuild id={self.id}>"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource(MemberSource):
    """
    In-memory member source with call tracking.

    - ``gate``: when set to an ``asyncio.Event``, fetch_all blocks until it is set
    - ``delay``: seconds every fetch_all sleeps first
    - ``fetch_all_effects``: queue consumed per fetch_all call, in call order; an
      exception is raised, a number is slept, anything else is ignored
    - ``page_delay``: seconds every fetch_page sleeps first
    - ``*_error``: exception raised on every call of that operation
    """

    def __init__(self, rosters: Optional[Dict[int, Dict[int, MemberRecord]]] = None):
        self.rosters = rosters or {}
        self.gate: Optional[asyncio.Event] = None
        self.delay = 0.0
        self.page_delay = 0.0
        self.fetch_all_effects = []
        self.fetch_all_error: Optional[BaseException] = None
        self.fetch_one_error: Optional[BaseException] = None
        self.fetch_many_error: Optional[BaseException] = None
        self.fetch_all_calls = []
        self.fetch_page_calls = []
        self.fetch_one_calls = []
        self.fetch_many_calls = []
        self.active_fetch_all = 0
        self.max_concurrent_fetch_all = 0

    def add(self, guild_id: int, *records: MemberRecord) -> None:
        roster = self.rosters.setdefault(guild_id, {})
        for record in records:
            roster[record.id] = record

    async def fetch_all(self, guild, timeout):
        self.fetch_all_calls.append((guild.id, timeout))
        self.active_fetch_all += 1
        self.max_concurrent_fetch_all = max(self.max_concurrent_fetch_all, self.active_fetch_all)
        effect = self.fetch_all_effects.pop(0) if self.fetch_all_effects else None
        try:
            if isinstance(effect, BaseException):
                raise effect
            if isinstance(effect, (int, float)):
                await asyncio.sleep(effect)
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.gate is not None:
                await deadline(self.gate.wait(), timeout, "fetch_all")
            if self.fetch_all_error is not None:
                raise self.fetch_all_error
            return dict(self.rosters.get(guild.id, {}))
        finally:
            self.active_fetch_all -= 1

    async def fetch_page(self, guild, limit, after, timeout):
        self.fetch_page_calls.append((guild.id, limit, after))
        if self.page_delay:
            await asyncio.sleep(self.page_delay)
        ids = sorted(member_id for member_id in self.rosters.get(guild.id, {}) if after is None or member_id > after)
        return {member_id: self.rosters[guild.id][member_id] for member_id in ids[:limit]}

    async def fetch_one(self, guild, member_id, timeout):
        self.fetch_one_calls.append((guild.id, member_id))
        if self.fetch_one_error is not None:
            raise self.fetch_one_error
        return self.rosters.get(guild.id, {}).get(member_id)

    async def fetch_many(self, guild, member_ids, timeout):
        ids = list(member_ids)
        self.fetch_many_calls.append((guild.id, ids))
        if self.fetch_many_error is not None:
            raise self.fetch_many_error
        roster = self.rosters.get(guild.id, {})
        return {member_id: roster[member_id] for member_id in ids if member_id in roster}


def make_member(member_id: int, roles: Iterable[int] = (), username: Optional[str] = None, **kwargs) -> MemberRecord:
    """Build a MemberRecord with sensible defaults."""
    username = username or f"user{member_id}"
    return MemberRecord(
        id=member_id,
        username=username,
        display_name=kwargs.pop("display_name", username.title()),
        joined_at=kwargs.pop("joined_at", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        role_ids=frozenset(roles),
        **kwargs,
    )


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it is truthy or fail the test."""
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while not predicate():
        if loop.time() > end:
            pytest.fail("condition not reached before timeout")
        await asyncio.sleep(interval)


ROLE_STAFF = 900
ROLE_ADMIN = 901
ROLE_MEMBER = 902


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guild():
    return FakeGuild()


@pytest.fixture
def source(guild):
    fake = FakeSource()
    fake.add(
        guild.id,
        make_member(1, roles=[ROLE_STAFF]),
        make_member(2, roles=[ROLE_ADMIN]),
        make_member(3, roles=[ROLE_STAFF, ROLE_ADMIN]),
        make_member(4, roles=[ROLE_MEMBER]),
    )
    return fake


@pytest.fixture
def config():
    return {
        "MEMBER_CACHE_TTL": 3_600_000,
        "MEMBER_FETCH_TIMEOUT": 60_000,
        "LARGE_GUILD_FETCH_TIMEOUT": 120_000,
        "LARGE_GUILD_MODE": False,
        "LARGE_GUILD_THRESHOLD": 5000,
    }


@pytest.fixture
def store(clock):
    return CacheStore(clock=clock)


@pytest.fixture
def service(source, config, store):
    return MemberCacheService(source=source, config=config, store=store)
