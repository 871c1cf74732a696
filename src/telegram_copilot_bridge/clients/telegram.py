"""Telegram Bot API client.

Thin wrapper over the four Bot API calls the bridge needs:
getUpdates, sendMessage, getFile and file download.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import BridgeConfig
from ..errors import CredentialMissingError, TelegramError

logger = logging.getLogger(__name__)


class TelegramModel(BaseModel):
    """Bot API objects carry many fields we do not use; keep them anyway."""

    model_config = ConfigDict(extra="allow")


class TelegramChat(TelegramModel):
    id: int
    type: str = "private"
    title: str | None = None
    username: str | None = None


class TelegramDocument(TelegramModel):
    file_id: str
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class TelegramMessage(TelegramModel):
    message_id: int
    date: int
    chat: TelegramChat
    text: str | None = None
    caption: str | None = None
    document: TelegramDocument | None = None


class TelegramUpdate(TelegramModel):
    update_id: int
    message: TelegramMessage | None = None


class TelegramFile(TelegramModel):
    file_id: str
    file_path: str | None = None
    file_size: int | None = None


class TelegramClient:
    """Async Bot API client.

    The token is checked per call, so a server started without one still
    serves every other tool.
    """

    def __init__(self, config: BridgeConfig, http: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, read=config.poll_timeout_seconds + 10.0)
        )

    @property
    def is_enabled(self) -> bool:
        return self.config.has_telegram_token

    def _endpoint(self, method: str) -> str:
        if not self.is_enabled:
            raise CredentialMissingError("TELEGRAM_BOT_TOKEN is required for Telegram tools")
        return f"{self.config.telegram_api_base}/bot{self.config.telegram_bot_token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._http.post(self._endpoint(method), json=payload)
        except httpx.HTTPError as e:
            # The request URL carries the bot token; report the error type only
            raise TelegramError(f"Telegram {method} request failed: {type(e).__name__}") from e
        if response.status_code >= 400:
            raise TelegramError(f"Telegram {method} failed: {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            raise TelegramError(f"Telegram {method} returned invalid JSON") from None

        if not body.get("ok"):
            description = body.get("description", "ok=false")
            raise TelegramError(f"Telegram {method} returned {description}")
        return body.get("result")

    async def get_updates(self, offset: int | None = None) -> list[TelegramUpdate]:
        """Long-poll for new message updates starting at offset."""
        payload: dict[str, Any] = {
            "timeout": self.config.poll_timeout_seconds,
            "allowed_updates": ["message"],
        }
        if offset is not None:
            payload["offset"] = offset

        result = await self._call("getUpdates", payload)
        try:
            return [TelegramUpdate.model_validate(item) for item in result or []]
        except ValidationError as e:
            raise TelegramError(f"Telegram getUpdates returned malformed updates: {e}") from e

    async def send_message(self, chat_id: int, text: str) -> int:
        """Send a text message and return its message_id."""
        result = await self._call("sendMessage", {"chat_id": chat_id, "text": text})
        try:
            return int(result["message_id"])
        except (KeyError, TypeError, ValueError):
            raise TelegramError("Telegram sendMessage returned no message_id") from None

    async def get_file(self, file_id: str) -> TelegramFile:
        result = await self._call("getFile", {"file_id": file_id})
        return TelegramFile.model_validate(result)

    async def download_file(self, file_path: str) -> bytes:
        """Download a file previously resolved with get_file()."""
        if not self.is_enabled:
            raise CredentialMissingError("TELEGRAM_BOT_TOKEN is required for Telegram tools")
        base, token = self.config.telegram_api_base, self.config.telegram_bot_token
        url = f"{base}/file/bot{token}/{file_path}"
        try:
            response = await self._http.get(url)
        except httpx.HTTPError as e:
            raise TelegramError(f"Telegram file download failed: {type(e).__name__}") from e
        if response.status_code >= 400:
            raise TelegramError(f"Telegram file download failed: {response.status_code}")
        return response.content

    async def aclose(self) -> None:
        await self._http.aclose()
