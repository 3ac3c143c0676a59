"""Runtime configuration for the call engine."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {value!r}") from e


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() == "true"


@dataclass(frozen=True)
class CallingConfig:
    """Tunables for matching, caching, retention and SLA tracking."""

    database_url: str = "postgresql+asyncpg://localhost:5432/userphone"
    redis_url: str = "redis://localhost:6379/0"
    discord_bot_token: str = ""
    discord_api_base: str = "https://discord.com/api/v10"
    bot_display_name: str = "InterChat Calls"
    bot_avatar_url: str = ""

    min_messages_for_leaderboard: int = 3
    recent_match_limit: int = 3
    recent_match_ttl_secs: int = 24 * 60 * 60
    active_call_ttl_secs: int = 60 * 60
    ended_call_ttl_secs: int = 30 * 60
    reported_call_ttl_secs: int = 48 * 60 * 60
    message_log_limit: int = 100
    webhook_ttl_secs: int = 24 * 60 * 60
    notification_limit: int = 5
    notification_window_secs: int = 60

    cleanup_age_hours: int = 48
    cleanup_interval_secs: int = 15 * 60
    matching_interval_secs: int = 1

    command_sla_ms: int = 1000
    matching_sla_ms: int = 10000
    metrics_window: int = 100

    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "CallingConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            redis_url=os.getenv("REDIS_URL", defaults.redis_url),
            discord_bot_token=os.getenv("DISCORD_BOT_TOKEN", ""),
            discord_api_base=os.getenv("DISCORD_API_BASE", defaults.discord_api_base),
            bot_display_name=os.getenv("BOT_DISPLAY_NAME", defaults.bot_display_name),
            bot_avatar_url=os.getenv("BOT_AVATAR_URL", ""),
            min_messages_for_leaderboard=_env_int(
                "CALL_MIN_MESSAGES_FOR_LEADERBOARD",
                defaults.min_messages_for_leaderboard,
            ),
            recent_match_limit=_env_int(
                "CALL_RECENT_MATCH_LIMIT", defaults.recent_match_limit
            ),
            recent_match_ttl_secs=_env_int(
                "CALL_RECENT_MATCH_TTL_SECS", defaults.recent_match_ttl_secs
            ),
            active_call_ttl_secs=_env_int(
                "CALL_ACTIVE_TTL_SECS", defaults.active_call_ttl_secs
            ),
            ended_call_ttl_secs=_env_int(
                "CALL_ENDED_TTL_SECS", defaults.ended_call_ttl_secs
            ),
            reported_call_ttl_secs=_env_int(
                "CALL_REPORTED_TTL_SECS", defaults.reported_call_ttl_secs
            ),
            message_log_limit=_env_int(
                "CALL_MESSAGE_LOG_LIMIT", defaults.message_log_limit
            ),
            webhook_ttl_secs=_env_int(
                "CALL_WEBHOOK_TTL_SECS", defaults.webhook_ttl_secs
            ),
            notification_limit=_env_int(
                "CALL_NOTIFICATION_LIMIT", defaults.notification_limit
            ),
            notification_window_secs=_env_int(
                "CALL_NOTIFICATION_WINDOW_SECS", defaults.notification_window_secs
            ),
            cleanup_age_hours=_env_int(
                "CALL_CLEANUP_AGE_HOURS", defaults.cleanup_age_hours
            ),
            cleanup_interval_secs=_env_int(
                "CALL_CLEANUP_INTERVAL_SECS", defaults.cleanup_interval_secs
            ),
            matching_interval_secs=_env_int(
                "CALL_MATCHING_INTERVAL_SECS", defaults.matching_interval_secs
            ),
            command_sla_ms=_env_int("CALL_COMMAND_SLA_MS", defaults.command_sla_ms),
            matching_sla_ms=_env_int("CALL_MATCHING_SLA_MS", defaults.matching_sla_ms),
            metrics_window=_env_int("CALL_METRICS_WINDOW", defaults.metrics_window),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            log_json=_env_bool("LOG_JSON", os.getenv("ENV") == "prod"),
        )
