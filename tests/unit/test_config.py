"""Tests for BridgeConfig.from_env."""

from __future__ import annotations

import pytest

from telegram_copilot_bridge.config import DEFAULT_COMPLETIONS_URL, BridgeConfig
from telegram_copilot_bridge.errors import ConfigurationError


class TestFromEnv:
    def test_defaults(self) -> None:
        config = BridgeConfig.from_env({})

        assert config.telegram_bot_token == ""
        assert not config.has_telegram_token
        assert config.reply_mode == "manual"
        assert config.poll_timeout_seconds == 20
        assert config.session_retention_messages == 200
        assert config.copilot_completions_url == DEFAULT_COMPLETIONS_URL

    def test_values_read(self) -> None:
        config = BridgeConfig.from_env(
            {
                "TELEGRAM_BOT_TOKEN": "123:abc",
                "REPLY_MODE": "auto",
                "POLL_INTERVAL_MS": "250",
                "DB_PATH": ":memory:",
                "DEFAULT_MODEL": "o3-mini",
            }
        )

        assert config.has_telegram_token
        assert config.reply_mode == "auto"
        assert config.poll_interval_ms == 250
        assert config.db_file is None
        assert config.default_model == "o3-mini"

    def test_github_token_fallback(self) -> None:
        assert BridgeConfig.from_env({"GITHUB_TOKEN": "gh"}).copilot_api_key == "gh"
        config = BridgeConfig.from_env({"GITHUB_TOKEN": "gh", "COPILOT_API_KEY": "key"})
        assert config.copilot_api_key == "key"

    def test_empty_number_uses_default(self) -> None:
        assert BridgeConfig.from_env({"SESSION_RETENTION_DAYS": ""}).session_retention_days == 30

    @pytest.mark.parametrize(
        "environ",
        [
            {"POLL_TIMEOUT_SECONDS": "soon"},
            {"REPLY_MODE": "sometimes"},
            {"SESSION_RETENTION_MESSAGES": "0"},
        ],
    )
    def test_invalid_values(self, environ: dict[str, str]) -> None:
        with pytest.raises(ConfigurationError):
            BridgeConfig.from_env(environ)

    def test_required_token(self) -> None:
        with pytest.raises(ConfigurationError, match="TELEGRAM_BOT_TOKEN"):
            BridgeConfig.from_env({}, require_telegram_token=True)

        config = BridgeConfig.from_env({"TELEGRAM_BOT_TOKEN": "t"}, require_telegram_token=True)
        assert config.telegram_bot_token == "t"
