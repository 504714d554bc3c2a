"""
Configuration Module - Environment variable loading for the member cache.

Provides:
- .env loading through python-dotenv
- Integer validation with optional auto-clamping
- Defaults matching the documented cache behaviour
- Token lookup for the bot entrypoint only
"""

import os
from types import MappingProxyType
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from .core.logger import ComponentLogger

_logger = ComponentLogger("config")

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

env_path = os.path.join(os.path.dirname(__file__), ".env")
load_dotenv(env_path)

# #################################################################################### #
#                            Defaults and Validation Ranges
# #################################################################################### #
FETCH_STRATEGIES = ("bulk", "chunked")

DEFAULT_CONFIG: Mapping[str, Any] = MappingProxyType({
    "MEMBER_CACHE_TTL": 3_600_000,
    "CHUNK_FETCH_SIZE": 1000,
    "MEMBER_FETCH_TIMEOUT": 60_000,
    "LARGE_GUILD_FETCH_TIMEOUT": 120_000,
    "LARGE_GUILD_MODE": False,
    "LARGE_GUILD_THRESHOLD": 5000,
    "MEMBER_FETCH_STRATEGY": "bulk",
    "DEBUG": False,
    "PRODUCTION": False,
})

VALIDATION_RANGES = {
    "MEMBER_CACHE_TTL": (1_000, 7 * 24 * 3_600_000),
    "CHUNK_FETCH_SIZE": (1, 1000),
    "MEMBER_FETCH_TIMEOUT": (1_000, 600_000),
    "LARGE_GUILD_FETCH_TIMEOUT": (1_000, 900_000),
    "LARGE_GUILD_THRESHOLD": (1, 1_000_000),
}

def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean value from string with consistent normalization.

    Args:
        value: String value to parse
        default: Default value if empty or None

    Returns:
        Parsed boolean value
    """
    if not value:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on", "y")

def validate_int_env_var(
    var_name: str,
    value: Optional[str],
    default: Optional[int] = None,
    auto_clamp: bool = False,
) -> int:
    """
    Validate and return integer environment variable value.

    Args:
        var_name: Name of the environment variable
        value: Raw value from environment (can be None)
        default: Default value if not provided
        auto_clamp: Whether to automatically clamp values to valid ranges

    Returns:
        Validated integer value

    Raises:
        ConfigError: If value is invalid or missing without default
    """
    if not value:
        if default is None:
            raise ConfigError(
                f"Missing required integer environment variable: {var_name}"
            )
        return default
    try:
        parsed_value = int(value)
    except ValueError:
        raise ConfigError(f"Invalid integer value for {var_name}: {value}")

    if auto_clamp and var_name in VALIDATION_RANGES:
        min_val, max_val = VALIDATION_RANGES[var_name]
        if parsed_value < min_val:
            _logger.warning("config_value_clamped",
                variable=var_name,
                original=parsed_value,
                clamped=min_val,
                reason="below_minimum",
            )
            return min_val
        if parsed_value > max_val:
            _logger.warning("config_value_clamped",
                variable=var_name,
                original=parsed_value,
                clamped=max_val,
                reason="above_maximum",
            )
            return max_val

    return parsed_value

def validate_ranges(var_name: str, value: int) -> None:
    """Validate value against defined ranges and log warnings."""
    if var_name in VALIDATION_RANGES:
        min_val, max_val = VALIDATION_RANGES[var_name]
        if not (min_val <= value <= max_val):
            _logger.warning("config_value_out_of_range",
                variable=var_name,
                value=value,
                min_recommended=min_val,
                max_recommended=max_val,
            )

# #################################################################################### #
#                            Configuration Loading Function
# #################################################################################### #
def load_config(environ: Optional[Mapping[str, str]] = None) -> Mapping[str, Any]:
    """
    Load and validate the member cache configuration.

    Args:
        environ: Mapping to read from instead of ``os.environ``

    Returns:
        Read-only mapping of validated configuration values

    Raises:
        ConfigError: If a value is invalid
    """
    env = os.environ if environ is None else environ
    auto_clamp = parse_bool(env.get("CONFIG_AUTO_CLAMP"))
    config = {}

    config["DEBUG"] = parse_bool(env.get("DEBUG"))
    config["PRODUCTION"] = parse_bool(env.get("PRODUCTION"))

    for var_name in (
        "MEMBER_CACHE_TTL",
        "CHUNK_FETCH_SIZE",
        "MEMBER_FETCH_TIMEOUT",
        "LARGE_GUILD_FETCH_TIMEOUT",
        "LARGE_GUILD_THRESHOLD",
    ):
        config[var_name] = validate_int_env_var(
            var_name, env.get(var_name), default=DEFAULT_CONFIG[var_name], auto_clamp=auto_clamp
        )
        validate_ranges(var_name, config[var_name])
        if config[var_name] <= 0:
            raise ConfigError(f"{var_name} must be positive, got {config[var_name]}")

    config["LARGE_GUILD_MODE"] = parse_bool(env.get("LARGE_GUILD_MODE"))

    strategy = (env.get("MEMBER_FETCH_STRATEGY") or DEFAULT_CONFIG["MEMBER_FETCH_STRATEGY"]).strip().lower()
    if strategy not in FETCH_STRATEGIES:
        raise ConfigError(
            f"Invalid MEMBER_FETCH_STRATEGY: {strategy} (expected one of {', '.join(FETCH_STRATEGIES)})"
        )
    config["MEMBER_FETCH_STRATEGY"] = strategy

    _logger.debug("config_loaded",
        total_vars=len(config),
        auto_clamp_enabled=auto_clamp,
    )
    return MappingProxyType(config)

def resolve_config(config: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    """Fill missing keys of ``config`` from :data:`DEFAULT_CONFIG`."""
    merged = dict(DEFAULT_CONFIG)
    if config:
        merged.update(config)
    return MappingProxyType(merged)

def get_token(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Get the Discord bot token.

    Raises:
        ConfigError: If neither BOT_TOKEN nor DISCORD_TOKEN is set
    """
    env = os.environ if environ is None else environ
    bot_token = env.get("BOT_TOKEN")
    discord_token = env.get("DISCORD_TOKEN")

    if bot_token and discord_token:
        _logger.warning("multiple_token_sources", selected="BOT_TOKEN")
    token = bot_token or discord_token
    if not token:
        raise ConfigError("Missing required environment variable: BOT_TOKEN or DISCORD_TOKEN")
    if len(token) < 50:
        raise ConfigError("Invalid Discord token format - token too short")
    return token

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG",
    "FETCH_STRATEGIES",
    "VALIDATION_RANGES",
    "load_config",
    "resolve_config",
    "get_token",
    "parse_bool",
    "validate_int_env_var",
    "validate_ranges",
]
