"""
Member and cache data models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

FRESH = "fresh"
STALE = "stale"
FAILED = "failed"


@dataclass(frozen=True)
class MemberRecord:
    """Read-only view of one guild member."""

    id: int
    username: str
    display_name: str
    global_name: Optional[str] = None
    avatar_url: Optional[str] = None
    nickname: Optional[str] = None
    joined_at: Optional[datetime] = None
    role_ids: FrozenSet[int] = field(default_factory=frozenset)

    def has_role(self, role_id: int) -> bool:
        return role_id in self.role_ids

    def has_any_role(self, role_ids: Iterable[int]) -> bool:
        return any(role_id in self.role_ids for role_id in role_ids)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe payload (ids as strings, ISO timestamps)."""
        return {
            "id": str(self.id),
            "username": self.username,
            "display_name": self.display_name,
            "global_name": self.global_name,
            "avatar_url": self.avatar_url,
            "nickname": self.nickname,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "role_ids": [str(role_id) for role_id in sorted(self.role_ids)],
        }

    @classmethod
    def from_discord(cls, member: Any) -> "MemberRecord":
        """
        Build a record from a py-cord ``discord.Member``.

        Args:
            member: Member object returned by the gateway or HTTP API

        Returns:
            Immutable member record
        """
        avatar = getattr(member, "display_avatar", None)
        return cls(
            id=member.id,
            username=member.name,
            display_name=member.display_name,
            global_name=getattr(member, "global_name", None),
            avatar_url=str(avatar.url) if avatar is not None else None,
            nickname=member.nick,
            joined_at=member.joined_at,
            role_ids=frozenset(role.id for role in member.roles),
        )


@dataclass(frozen=True)
class CacheEntry:
    """
    Snapshot of one guild's membership.

    ``members`` is never mutated in place; upserts build a new entry so a
    reader holding a reference always sees a complete snapshot.
    """

    guild_id: int
    members: Mapping[int, MemberRecord]
    last_update: float
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def with_members(self, records: Iterable[MemberRecord]) -> "CacheEntry":
        """Return a copy with ``records`` added or replaced, keeping ``last_update``."""
        members = dict(self.members)
        for record in records:
            members[record.id] = record
        return CacheEntry(self.guild_id, members, self.last_update, self.updated_at)


@dataclass(frozen=True)
class FetchOutcome:
    """
    Result of a full-guild member request.

    - ``fresh``: data from the cache within TTL or from a successful fetch
    - ``stale``: fetch failed, older cached data returned (``error`` set)
    - ``failed``: fetch failed and nothing was cached (``error`` set)
    """

    guild_id: int
    status: str
    members: Mapping[int, MemberRecord] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    @property
    def degraded(self) -> bool:
        return self.status == STALE

    @classmethod
    def fresh(cls, guild_id: int, members: Mapping[int, MemberRecord]) -> "FetchOutcome":
        return cls(guild_id, FRESH, members)

    @classmethod
    def stale(cls, guild_id: int, members: Mapping[int, MemberRecord], error: BaseException) -> "FetchOutcome":
        return cls(guild_id, STALE, members, error)

    @classmethod
    def failed(cls, guild_id: int, error: BaseException) -> "FetchOutcome":
        return cls(guild_id, FAILED, {}, error)
