"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ReplyMode = Literal["manual", "auto"]

DEFAULT_PROJECT_URL = "https://github.com/duncanhovsky/telegram-copilot-bridge-skill"
DEFAULT_COMPLETIONS_URL = "https://models.inference.ai.azure.com/chat/completions"


class BridgeConfig(BaseModel):
    """Settings shared by the MCP server, the daemon and the CLI."""

    telegram_bot_token: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    reply_mode: ReplyMode = "manual"
    poll_timeout_seconds: int = Field(default=20, ge=0)
    poll_interval_ms: int = Field(default=1200, ge=0)

    # Retention
    session_retention_days: int = Field(default=30, ge=1)
    session_retention_messages: int = Field(default=200, ge=1)

    # Storage
    db_path: str = "./data/sessions.sqlite"
    paper_cache_dir: str = "./data/papers/cache"
    paper_db_dir: str = "./data/papers/library"
    model_catalog_path: str = "./config/models.catalog.json"

    # Thread defaults
    default_topic: str = "default"
    default_agent: str = "default"
    default_model: str = "gpt-4o"

    # Inference backend
    copilot_completions_url: str = DEFAULT_COMPLETIONS_URL
    copilot_api_key: str = ""

    project_url: str = DEFAULT_PROJECT_URL

    @property
    def has_telegram_token(self) -> bool:
        return bool(self.telegram_bot_token)

    @property
    def db_file(self) -> Path | None:
        """Filesystem location of the database, None for in-memory stores."""
        if self.db_path == ":memory:":
            return None
        return Path(self.db_path).expanduser()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        require_telegram_token: bool = False,
    ) -> BridgeConfig:
        """Build a config from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)
            require_telegram_token: Fail when TELEGRAM_BOT_TOKEN is empty

        Raises:
            ConfigurationError: If a value is malformed or a required one is missing
        """
        env = os.environ if environ is None else environ

        token = env.get("TELEGRAM_BOT_TOKEN", "")
        if require_telegram_token and not token:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is required")

        reply_mode = env.get("REPLY_MODE") or "manual"
        if reply_mode not in ("manual", "auto"):
            raise ConfigurationError(f"REPLY_MODE must be manual or auto, got: {reply_mode}")

        try:
            config = cls(
                telegram_bot_token=token,
                telegram_api_base=env.get("TELEGRAM_API_BASE", "https://api.telegram.org"),
                reply_mode=reply_mode,
                poll_timeout_seconds=_as_int(env, "POLL_TIMEOUT_SECONDS", 20),
                poll_interval_ms=_as_int(env, "POLL_INTERVAL_MS", 1200),
                session_retention_days=_as_int(env, "SESSION_RETENTION_DAYS", 30),
                session_retention_messages=_as_int(env, "SESSION_RETENTION_MESSAGES", 200),
                db_path=env.get("DB_PATH", "./data/sessions.sqlite"),
                paper_cache_dir=env.get("PAPER_CACHE_DIR", "./data/papers/cache"),
                paper_db_dir=env.get("PAPER_DB_DIR", "./data/papers/library"),
                model_catalog_path=env.get("MODEL_CATALOG_PATH", "./config/models.catalog.json"),
                default_topic=env.get("DEFAULT_TOPIC", "default"),
                default_agent=env.get("DEFAULT_AGENT", "default"),
                default_model=env.get("DEFAULT_MODEL", "gpt-4o"),
                copilot_completions_url=env.get(
                    "COPILOT_CHAT_COMPLETIONS_URL", DEFAULT_COMPLETIONS_URL
                ),
                copilot_api_key=env.get("COPILOT_API_KEY") or env.get("GITHUB_TOKEN") or "",
                project_url=env.get("GITHUB_REPO_URL", DEFAULT_PROJECT_URL),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        if not config.has_telegram_token:
            logger.info("TELEGRAM_BOT_TOKEN not set, telegram tools are disabled")
        return config


def _as_int(env: Mapping[str, str], name: str, fallback: int) -> int:
    value = env.get(name)
    if not value:
        return fallback
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        raise ConfigurationError(f"Invalid number for {name}: {value}") from None
