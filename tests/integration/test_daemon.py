"""Integration tests for the Telegram polling daemon."""

from __future__ import annotations

import io
from typing import Any

import pytest
from pypdf import PdfWriter

from telegram_copilot_bridge.clients.telegram import TelegramFile, TelegramUpdate
from telegram_copilot_bridge.config import BridgeConfig
from telegram_copilot_bridge.daemon import (
    ACTIVE_TOPIC_KEY,
    CHUNK_SIZE,
    BridgeDaemon,
    is_pdf,
    split_chunks,
)
from telegram_copilot_bridge.errors import TelegramError
from telegram_copilot_bridge.session_store import ACTIVE_PAPER_KEY, SessionStore
from telegram_copilot_bridge.tools.builtin import create_context

CHAT_ID = 42


class FakeTelegram:
    """In-memory stand-in for TelegramClient."""

    is_enabled = True

    def __init__(self) -> None:
        self.queued: list[list[TelegramUpdate]] = []
        self.offsets: list[int | None] = []
        self.sent: list[tuple[int, str]] = []
        self.files: dict[str, bytes] = {}

    def queue(self, *messages: dict[str, Any], first_id: int = 100) -> None:
        self.queued.append(
            [
                TelegramUpdate.model_validate({"update_id": first_id + index, "message": message})
                for index, message in enumerate(messages)
            ]
        )

    async def get_updates(self, offset: int | None = None) -> list[TelegramUpdate]:
        self.offsets.append(offset)
        return self.queued.pop(0) if self.queued else []

    async def send_message(self, chat_id: int, text: str) -> int:
        self.sent.append((chat_id, text))
        return len(self.sent)

    async def get_file(self, file_id: str) -> TelegramFile:
        return TelegramFile(file_id=file_id, file_path=f"documents/{file_id}.pdf")

    async def download_file(self, file_path: str) -> bytes:
        try:
            return self.files[file_path]
        except KeyError:
            raise TelegramError(f"Telegram file download failed: 404 {file_path}") from None

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


def text_message(text: str, message_id: int = 1) -> dict[str, Any]:
    return {"message_id": message_id, "date": 0, "chat": {"id": CHAT_ID}, "text": text}


def blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def telegram() -> FakeTelegram:
    return FakeTelegram()


@pytest.fixture
def daemon(config: BridgeConfig, store: SessionStore, telegram: FakeTelegram) -> BridgeDaemon:
    return BridgeDaemon(create_context(config, store, telegram=telegram))


class TestHelpers:
    def test_split_chunks(self) -> None:
        chunks = split_chunks("x" * (CHUNK_SIZE * 2 + 1))
        assert [len(chunk) for chunk in chunks] == [CHUNK_SIZE, CHUNK_SIZE, 1]
        assert split_chunks("") == []

    @pytest.mark.parametrize(
        ("file_name", "mime_type", "expected"),
        [
            ("a.PDF", None, True),
            (None, "application/pdf", True),
            ("notes.txt", "text/plain", False),
            (None, None, False),
        ],
    )
    def test_is_pdf(self, file_name, mime_type, expected) -> None:
        assert is_pdf(file_name, mime_type) is expected


class TestPolling:
    """Tests for poll_once() and offset persistence."""

    @pytest.mark.asyncio
    async def test_offset_advances_and_persists(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queue(text_message("/start"), text_message("hello", 2), first_id=500)

        assert await daemon.poll_once() == 2
        assert telegram.offsets == [None]
        assert store.get_offset() == 502

        assert await daemon.poll_once() == 0
        assert telegram.offsets[-1] == 502
        assert store.get_offset() == 502

    @pytest.mark.asyncio
    async def test_failure_mid_batch_keeps_earlier_progress(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        """Updates handled before an unexpected failure are not delivered again."""
        handled = telegram.send_message

        async def send_message(chat_id: int, text: str) -> int:
            if len(telegram.sent) == 1:
                raise RuntimeError("connection reset")
            return await handled(chat_id, text)

        telegram.send_message = send_message
        telegram.queue(text_message("first", 1), text_message("second", 2), first_id=700)

        with pytest.raises(RuntimeError):
            await daemon.poll_once()
        assert store.get_offset() == 701

        telegram.send_message = handled
        telegram.queue(text_message("second", 2), first_id=701)
        await daemon.poll_once()

        assert telegram.offsets == [None, 701]
        assert store.get_offset() == 702
        contents = [m.content for m in store.get_history(CHAT_ID, "default", 10)]
        assert contents.count("first") == 1

    @pytest.mark.asyncio
    async def test_updates_without_message_advance_offset(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queued.append([TelegramUpdate(update_id=10)])

        await daemon.poll_once()

        assert store.get_offset() == 11
        assert telegram.sent == []

    @pytest.mark.asyncio
    async def test_run_stops(self, daemon: BridgeDaemon, telegram: FakeTelegram) -> None:
        telegram.queue(text_message("/start"))
        original = telegram.get_updates

        async def get_updates_then_stop(offset=None):
            daemon.stop()
            return await original(offset)

        telegram.get_updates = get_updates_then_stop
        await daemon.run()

        assert len(telegram.sent) == 1


class TestCommands:
    """Tests for chat command handling."""

    @pytest.mark.asyncio
    async def test_start(self, daemon: BridgeDaemon, telegram: FakeTelegram) -> None:
        telegram.queue(text_message("/start"))
        await daemon.poll_once()

        assert telegram.texts[0].startswith("Telegram Copilot Bridge is ready.")

    @pytest.mark.asyncio
    async def test_plain_text_recorded_in_manual_mode(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queue(text_message("remember this"))
        await daemon.poll_once()

        (message,) = store.get_history(CHAT_ID)
        assert (message.role, message.content) == ("user", "remember this")
        assert "Manual reply mode" in telegram.texts[0]

    @pytest.mark.asyncio
    async def test_topic_switch_applies_to_later_messages(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queue(text_message("/topic research"), text_message("in research", 2))
        await daemon.poll_once()

        assert store.get_topic_state(CHAT_ID, "default", ACTIVE_TOPIC_KEY) == "research"
        assert telegram.texts[0] == "Topic changed to research"
        history = store.get_history(CHAT_ID, "research")
        assert [m.content for m in history] == ["Topic changed to research", "in research"]
        assert store.get_history(CHAT_ID, "default") == []

    @pytest.mark.asyncio
    async def test_model_selection(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queue(text_message("/model o3-mini"), text_message("/model nope", 2))
        await daemon.poll_once()

        assert store.get_selected_model(CHAT_ID, "default") == "o3-mini"
        assert telegram.texts[1].startswith("Unknown model: nope")

    @pytest.mark.asyncio
    async def test_models_list(self, daemon: BridgeDaemon, telegram: FakeTelegram) -> None:
        telegram.queue(text_message("/models"))
        await daemon.poll_once()

        assert telegram.texts[0].startswith("Available Copilot models:")

    @pytest.mark.asyncio
    async def test_mode_switch(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queue(text_message("/mode auto"))
        await daemon.poll_once()

        assert daemon.reply_mode(CHAT_ID, "default") == "auto"
        assert telegram.texts == ["Reply mode changed to auto"]

    @pytest.mark.asyncio
    async def test_history_preview(self, daemon: BridgeDaemon, telegram: FakeTelegram) -> None:
        telegram.queue(
            text_message("first note"),
            text_message("/history"),
            text_message("/history zebra"),
            first_id=1,
        )
        await daemon.poll_once()

        assert telegram.texts[1] == "History preview:\nuser: first note"
        assert telegram.texts[2] == "No history found."

    @pytest.mark.asyncio
    async def test_long_reply_is_chunked(
        self, daemon: BridgeDaemon, telegram: FakeTelegram
    ) -> None:
        await daemon.send(CHAT_ID, "y" * (CHUNK_SIZE + 10))

        assert [len(text) for text in telegram.texts] == [CHUNK_SIZE, 10]


class TestPapers:
    """Tests for PDF ingestion and paper commands."""

    def pdf_message(self, file_id: str) -> dict[str, Any]:
        return {
            "message_id": 3,
            "date": 0,
            "chat": {"id": CHAT_ID},
            "document": {"file_id": file_id, "file_name": "Notes.pdf"},
        }

    @pytest.mark.asyncio
    async def test_pdf_ingested_and_activated(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.files["documents/f1.pdf"] = blank_pdf()
        telegram.queue(self.pdf_message("f1"), text_message("/paper", 4))
        await daemon.poll_once()

        active = store.get_topic_state(CHAT_ID, "default", ACTIVE_PAPER_KEY)
        assert active is not None and active.endswith("Notes.pdf")
        assert telegram.texts[1].startswith("Paper saved: Notes")
        assert telegram.texts[2].startswith("Active paper: Notes")
        assert store.get_history(CHAT_ID)[-1].content.startswith("[paper] title=Notes")

    @pytest.mark.asyncio
    async def test_failed_download_reported(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.queue(self.pdf_message("missing"))
        await daemon.poll_once()

        assert telegram.texts[-1].startswith("PDF processing failed")
        assert store.get_topic_state(CHAT_ID, "default", ACTIVE_PAPER_KEY) is None

    @pytest.mark.asyncio
    async def test_ask_without_paper(self, daemon: BridgeDaemon, telegram: FakeTelegram) -> None:
        telegram.queue(text_message("/ask what?"), text_message("/paper", 2))
        await daemon.poll_once()

        assert telegram.texts == [
            "No paper to ask about. Send a PDF first.",
            "No active paper in this topic. Send a PDF first.",
        ]

    @pytest.mark.asyncio
    async def test_ask_records_question_and_context(
        self, daemon: BridgeDaemon, telegram: FakeTelegram, store: SessionStore
    ) -> None:
        telegram.files["documents/f1.pdf"] = blank_pdf()
        telegram.queue(self.pdf_message("f1"), text_message("/ask what is it about?", 4))
        await daemon.poll_once()

        contents = [m.content for m in store.get_history(CHAT_ID)]
        assert contents[-2] == "what is it about?"
        assert contents[-1].startswith("[paper-context]\nPaper title: Notes")
        assert "matches this question" in telegram.texts[-1]
