import pytest

from userphone.config import CallingConfig


class TestCallingConfig:
    """Unit tests for CallingConfig."""

    def test_defaults(self) -> None:
        config = CallingConfig()

        assert config.min_messages_for_leaderboard == 3
        assert config.recent_match_limit == 3
        assert config.recent_match_ttl_secs == 86400
        assert config.ended_call_ttl_secs == 1800
        assert config.reported_call_ttl_secs == 172800
        assert config.message_log_limit == 100
        assert config.cleanup_age_hours == 48
        assert config.command_sla_ms == 1000
        assert config.matching_sla_ms == 10000
        assert config.notification_limit == 5
        assert config.notification_window_secs == 60
        assert config.matching_interval_secs == 1

    def test_from_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CALL_MIN_MESSAGES_FOR_LEADERBOARD", "5")
        monkeypatch.setenv("CALL_ENDED_TTL_SECS", "60")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_JSON", "true")
        monkeypatch.setenv("CALL_MATCHING_INTERVAL_SECS", "3")
        monkeypatch.setenv("CALL_NOTIFICATION_LIMIT", "10")

        config = CallingConfig.from_env()

        assert config.min_messages_for_leaderboard == 5
        assert config.ended_call_ttl_secs == 60
        assert config.redis_url == "redis://cache:6379/1"
        assert config.log_level == "DEBUG"
        assert config.log_json is True
        assert config.matching_interval_secs == 3
        assert config.notification_limit == 10
        assert config.reported_call_ttl_secs == 172800

    def test_empty_value_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CALL_MESSAGE_LOG_LIMIT", "")
        assert CallingConfig.from_env().message_log_limit == 100

    def test_invalid_integer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CALL_RECENT_MATCH_LIMIT", "three")
        with pytest.raises(ValueError, match="CALL_RECENT_MATCH_LIMIT"):
            CallingConfig.from_env()
