"""
Member Cache Admin Cog - Slash commands to inspect and manage the member cache.

Commands (``/member_cache``, requires Manage Server):
    - stats: cached guilds, member counts, age and validity
    - clear: drop this guild's entry, or every entry
    - refresh: refetch this guild's members in the background
"""

from typing import Any, Dict, Optional

import discord
from discord.ext import commands

from ..core.logger import ComponentLogger
from ..service import MemberCacheService

_logger = ComponentLogger("member_cache_admin")
MAX_EMBED_FIELDS = 25


class MemberCacheAdmin(commands.Cog):
    """Administrative commands for the member cache."""

    member_cache_group = discord.SlashCommandGroup(
        "member_cache",
        "Inspect and manage the guild member cache",
        default_member_permissions=discord.Permissions(manage_guild=True),
    )

    def __init__(self, bot: discord.Bot, service: Optional[MemberCacheService] = None) -> None:
        """
        Args:
            bot: Discord bot instance
            service: Member cache service (defaults to ``bot.member_cache``)
        """
        self.bot = bot
        self.service = service or bot.member_cache
        _logger.debug("member_cache_admin_cog_initialized")

    def build_stats_embed(self, stats: Dict[str, Any]) -> discord.Embed:
        """Render :meth:`MemberCacheService.get_cache_stats` output as an embed."""
        embed = discord.Embed(
            title="Member cache",
            description=f"{stats['total_guilds']} guild(s) cached",
            color=discord.Color.blurple(),
        )
        for guild_stats in stats["guilds"][:MAX_EMBED_FIELDS]:
            guild = self.bot.get_guild(guild_stats["guild_id"])
            name = guild.name if guild else str(guild_stats["guild_id"])
            state = "fresh" if guild_stats["is_valid"] else "stale"
            embed.add_field(
                name=name,
                value=(
                    f"{guild_stats['member_count']} members\n"
                    f"age {guild_stats['age_seconds']}s ({state})"
                ),
                inline=True,
            )
        return embed

    def clear_for(self, guild_id: int, all_guilds: bool) -> str:
        removed = self.service.clear_cache(None if all_guilds else guild_id)
        scope = "all guilds" if all_guilds else "this guild"
        _logger.info("admin_cache_cleared", guild_id=guild_id, all_guilds=all_guilds, removed=removed)
        return f"Cleared {removed} cache entr{'y' if removed == 1 else 'ies'} for {scope}."

    def refresh_for(self, guild: Any) -> str:
        self.service.refresh_cache(guild)
        _logger.info("admin_cache_refresh", guild_id=guild.id)
        return "Member refresh started in the background."

    @member_cache_group.command(name="stats", description="Show member cache statistics")
    async def stats(self, ctx: discord.ApplicationContext) -> None:
        await ctx.respond(embed=self.build_stats_embed(self.service.get_cache_stats()), ephemeral=True)

    @member_cache_group.command(name="clear", description="Clear cached members")
    async def clear(
        self,
        ctx: discord.ApplicationContext,
        all_guilds: discord.Option(bool, "Clear every guild instead of this one", default=False),
    ) -> None:
        await ctx.respond(self.clear_for(ctx.guild.id, all_guilds), ephemeral=True)

    @member_cache_group.command(name="refresh", description="Refetch this guild's members")
    async def refresh(self, ctx: discord.ApplicationContext) -> None:
        await ctx.respond(self.refresh_for(ctx.guild), ephemeral=True)


def setup(bot: discord.Bot) -> None:
    """Setup function to add the cog to the bot."""
    bot.add_cog(MemberCacheAdmin(bot))
