"""Tests for the HTTP clients and the model catalog."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from telegram_copilot_bridge.clients.catalog import BUILTIN_MODELS, ModelCatalog
from telegram_copilot_bridge.clients.copilot import CopilotClient
from telegram_copilot_bridge.clients.telegram import TelegramClient
from telegram_copilot_bridge.config import BridgeConfig
from telegram_copilot_bridge.errors import (
    CopilotError,
    CredentialMissingError,
    TelegramError,
)


def mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Telegram
# =============================================================================


class TestTelegramClient:
    """Tests for the Bot API wrapper."""

    @pytest.fixture
    def config(self) -> BridgeConfig:
        return BridgeConfig(telegram_bot_token="123:abc", telegram_api_base="https://tg.test")

    @pytest.mark.asyncio
    async def test_get_updates(self, config: BridgeConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            update = {
                "update_id": 10,
                "message": {"message_id": 1, "date": 0, "chat": {"id": 5}, "text": "hi"},
            }
            return httpx.Response(200, json={"ok": True, "result": [update]})

        client = TelegramClient(config, mock_http(handler))
        updates = await client.get_updates(offset=10)

        assert str(seen[0].url) == "https://tg.test/bot123:abc/getUpdates"
        assert json.loads(seen[0].content)["offset"] == 10
        assert updates[0].update_id == 10
        assert updates[0].message.chat.id == 5
        assert updates[0].message.text == "hi"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_send_message_returns_id(self, config: BridgeConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"chat_id": 5, "text": "hello"}
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 77}})

        client = TelegramClient(config, mock_http(handler))
        assert await client.send_message(5, "hello") == 77

    @pytest.mark.asyncio
    async def test_api_rejection(self, config: BridgeConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "description": "chat not found"})

        client = TelegramClient(config, mock_http(handler))
        with pytest.raises(TelegramError, match="chat not found"):
            await client.send_message(5, "hello")

    @pytest.mark.asyncio
    async def test_http_error(self, config: BridgeConfig) -> None:
        client = TelegramClient(config, mock_http(lambda request: httpx.Response(502)))

        with pytest.raises(TelegramError, match="502"):
            await client.get_updates()

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self, config: BridgeConfig) -> None:
        """Connection failures surface as TelegramError without the token."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = TelegramClient(config, mock_http(handler))

        with pytest.raises(TelegramError, match="ConnectError") as excinfo:
            await client.get_updates()
        assert "123:abc" not in str(excinfo.value)
        with pytest.raises(TelegramError):
            await client.send_message(5, "hello")
        with pytest.raises(TelegramError):
            await client.download_file("documents/a.pdf")

    @pytest.mark.asyncio
    async def test_download_file(self, config: BridgeConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/getFile"):
                result = {"file_id": "f1", "file_path": "documents/a.pdf"}
                return httpx.Response(200, json={"ok": True, "result": result})
            assert request.url.path == "/file/bot123:abc/documents/a.pdf"
            return httpx.Response(200, content=b"%PDF-1.4")

        client = TelegramClient(config, mock_http(handler))
        file = await client.get_file("f1")
        assert await client.download_file(file.file_path) == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_disabled_without_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = TelegramClient(BridgeConfig(), mock_http(handler))

        assert not client.is_enabled
        with pytest.raises(CredentialMissingError):
            await client.get_updates()
        with pytest.raises(CredentialMissingError):
            await client.download_file("x")


# =============================================================================
# Copilot
# =============================================================================


class TestCopilotClient:
    """Tests for the chat completions client."""

    @pytest.fixture
    def config(self) -> BridgeConfig:
        return BridgeConfig(copilot_api_key="key", copilot_completions_url="https://llm.test/chat")

    @pytest.mark.asyncio
    async def test_generate_reply(self, config: BridgeConfig) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            answer = {"choices": [{"message": {"content": "  the answer  "}}]}
            return httpx.Response(200, json=answer)

        client = CopilotClient(config, mock_http(handler))
        reply = await client.generate_reply(
            model_id="o3-mini",
            topic="research",
            agent="reviewer",
            user_input="what now?",
            context_summary="user: hi",
            extra_context="page 3 says so",
        )

        assert reply == "the answer"
        assert captured["auth"] == "Bearer key"
        body = captured["body"]
        assert body["model"] == "o3-mini"
        assert "Current topic: research" in body["messages"][0]["content"]
        user_content = body["messages"][1]["content"]
        assert "user: hi" in user_content
        assert "page 3 says so" in user_content
        assert user_content.endswith("User input:\nwhat now?")

    @pytest.mark.asyncio
    async def test_empty_model_uses_default(self, config: BridgeConfig) -> None:
        models: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            models.append(json.loads(request.content)["model"])
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        client = CopilotClient(config, mock_http(handler))
        await client.generate_reply("", "t", "a", "x", "")

        assert models == [config.default_model]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="boom"),
            httpx.Response(200, json={"choices": []}),
            httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
        ],
    )
    async def test_backend_failures(self, config: BridgeConfig, response: httpx.Response) -> None:
        client = CopilotClient(config, mock_http(lambda request: response))

        with pytest.raises(CopilotError):
            await client.generate_reply("gpt-4o", "t", "a", "x", "")

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self, config: BridgeConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = CopilotClient(config, mock_http(handler))

        with pytest.raises(CopilotError, match="timed out"):
            await client.generate_reply("gpt-4o", "t", "a", "x", "")

    @pytest.mark.asyncio
    async def test_disabled_without_key(self) -> None:
        client = CopilotClient(BridgeConfig(), mock_http(lambda request: httpx.Response(200)))

        assert not client.is_enabled
        with pytest.raises(CredentialMissingError):
            await client.generate_reply("gpt-4o", "t", "a", "x", "")


# =============================================================================
# Catalog
# =============================================================================


class TestModelCatalog:
    def test_builtin_when_missing(self, tmp_path: Path) -> None:
        catalog = ModelCatalog(tmp_path / "missing.json")
        assert catalog.list() == BUILTIN_MODELS

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "models.json"
        path.write_text(json.dumps([{"id": "m1", "name": "Model One", "provider": "Acme"}]))

        catalog = ModelCatalog(path)

        assert [model.id for model in catalog.list()] == ["m1"]
        assert catalog.find_by_id("m1").name == "Model One"
        assert catalog.find_by_id("gpt-4o") is None

    def test_invalid_file_falls_back(self, tmp_path: Path) -> None:
        path = tmp_path / "models.json"
        path.write_text("{not json")

        assert ModelCatalog(path).list() == BUILTIN_MODELS

    def test_format_list(self) -> None:
        text = ModelCatalog().format_list()

        assert text.splitlines()[0] == "Available Copilot models:"
        assert "- gpt-4o | GPT-4o | OpenAI" in text
        assert "  pricing: included" in text
