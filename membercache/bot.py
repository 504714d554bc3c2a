"""
Bot entrypoint - py-cord bot hosting the member cache.

Builds the bot, attaches one ``MemberCacheService`` as ``bot.member_cache``,
loads the admin cog, warms the cache on the first ready event and waits for
background fetches during shutdown.
"""

import asyncio
from typing import Any, Mapping, Optional

import discord

from . import config as config_module
from .core.logger import ComponentLogger, setup_logging
from .service import MemberCacheService
from .sources import MemberSource

_bot_logger = ComponentLogger("bot")

EXTENSIONS = ("membercache.cogs.member_cache_admin",)
SHUTDOWN_TIMEOUT_SECONDS = 10


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    return intents


def create_bot(
    config: Optional[Mapping[str, Any]] = None,
    source: Optional[MemberSource] = None,
) -> discord.Bot:
    """
    Create the bot with its member cache attached.

    Args:
        config: Validated configuration (loaded from the environment if omitted)
        source: Member source override

    Returns:
        Configured bot, not yet started
    """
    config = config if config is not None else config_module.load_config()
    bot = discord.Bot(intents=build_intents())
    bot.member_cache = MemberCacheService(source=source, config=config)
    bot._cache_warmed = False

    for ext in EXTENSIONS:
        try:
            bot.load_extension(ext)
            _bot_logger.debug("extension_loaded", extension=ext)
        except Exception as e:
            _bot_logger.error("extension_load_failed", extension=ext,
                              error_type=type(e).__name__, error_msg=str(e))

    @bot.event
    async def on_ready() -> None:
        _bot_logger.info("bot_connected", username=str(bot.user), guild_count=len(bot.guilds))
        if bot._cache_warmed:
            return
        bot._cache_warmed = True
        await bot.member_cache.warm_cache(bot)

    @bot.event
    async def on_disconnect() -> None:
        _bot_logger.warning("gateway_disconnected")

    return bot


async def run_bot() -> None:
    """Load configuration, start the bot and shut it down cleanly."""
    config = config_module.load_config()
    setup_logging(debug=config["DEBUG"])
    bot = create_bot(config)

    try:
        await bot.start(config_module.get_token())
    except asyncio.CancelledError:
        _bot_logger.info("bot_startup_cancelled")
    finally:
        _bot_logger.info("shutdown_cleanup_started")
        await bot.member_cache.wait_for_background_tasks(timeout=SHUTDOWN_TIMEOUT_SECONDS)
        if not bot.is_closed():
            await bot.close()
