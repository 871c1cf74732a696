"""Telegram polling daemon.

Long-polls getUpdates from the stored offset, answers chat commands,
ingests PDF documents and records every message in the session store.
The offset is persisted after each update so a restart resumes where the
previous run stopped.
"""

from __future__ import annotations

import asyncio
import logging
import re

from .clients.telegram import TelegramMessage
from .commands import (
    AgentCommand,
    AskCommand,
    HistoryCommand,
    ModeCommand,
    ModelCommand,
    ModelsCommand,
    PaperCommand,
    ParsedMessage,
    PlainText,
    StartCommand,
    TopicCommand,
    parse_message,
)
from .errors import BridgeError
from .session_store import ACTIVE_PAPER_KEY
from .tools.builtin import build_start_message
from .tools.registry import ToolContext

logger = logging.getLogger(__name__)

CHUNK_SIZE = 3500
HISTORY_PREVIEW = 8
PREVIEW_CHARS = 120
PAPER_CONTEXT_CHARS = 6000

REPLY_MODE_KEY = "reply_mode"
# Chat-level slot, kept in the default topic's state
ACTIVE_TOPIC_KEY = "active_topic"


def split_chunks(text: str, size: int = CHUNK_SIZE) -> list[str]:
    """Split text into Telegram-sized pieces."""
    return [text[index : index + size] for index in range(0, len(text), size)]


def is_pdf(file_name: str | None, mime_type: str | None) -> bool:
    if mime_type and "pdf" in mime_type.lower():
        return True
    return bool(file_name) and file_name.lower().endswith(".pdf")


class BridgeDaemon:
    """Polls Telegram and handles each incoming message.

    Usage:
        daemon = BridgeDaemon(create_context(config))
        await daemon.run()

    Errors in a poll cycle are logged and the loop continues after the
    poll interval.
    """

    def __init__(self, context: ToolContext) -> None:
        self.context = context
        self.config = context.config
        self.store = context.store
        self.telegram = context.telegram
        self._stopped = asyncio.Event()

    def stop(self) -> None:
        self._stopped.set()

    async def run(self) -> None:
        """Poll until stop() is called."""
        logger.info(f"Daemon started, resuming from offset {self.store.get_offset()}")
        while not self._stopped.is_set():
            try:
                await self.poll_once()
            except BridgeError as e:
                logger.error(f"Poll cycle failed: {e}")
            except Exception as e:
                logger.exception(f"Unexpected error in poll cycle: {e}")

            try:
                await asyncio.wait_for(
                    self._stopped.wait(), timeout=self.config.poll_interval_ms / 1000
                )
            except TimeoutError:
                pass
        logger.info("Daemon stopped")

    async def poll_once(self) -> int:
        """Fetch and handle one batch of updates.

        Returns:
            Number of updates handled
        """
        offset = self.store.get_offset()
        updates = await self.telegram.get_updates(offset or None)

        # Offset is persisted after every update, including skipped ones
        for update in updates:
            if update.message is not None:
                try:
                    await self.handle_message(update.message)
                except BridgeError as e:
                    logger.error(f"Failed to handle update {update.update_id}: {e}")
            offset = max(offset, update.update_id + 1)
            self.store.set_offset(offset)

        if updates:
            logger.debug(f"Handled {len(updates)} updates, offset now {offset}")
        return len(updates)

    # =========================================================================
    # Message handling
    # =========================================================================

    async def handle_message(self, message: TelegramMessage) -> None:
        chat_id = message.chat.id
        profile = self.store.get_current_profile(chat_id, self.active_topic(chat_id))
        parsed = parse_message(message.text or message.caption or "", profile)

        document = message.document
        if document is not None and is_pdf(document.file_name, document.mime_type):
            await self.send(chat_id, "PDF received, reading and classifying it...")
            await self._ingest_document(message, parsed)
            return

        match parsed:
            case StartCommand():
                await self.send(chat_id, build_start_message(self.config))
            case ModelsCommand():
                await self.send(chat_id, self.context.catalog.format_list())
            case ModelCommand():
                await self._select_model(chat_id, parsed)
            case PaperCommand():
                await self._show_paper(chat_id, parsed)
            case AskCommand():
                await self._ask_paper(chat_id, parsed)
            case HistoryCommand():
                await self._show_history(chat_id, parsed)
            case ModeCommand():
                self.store.set_topic_state(chat_id, parsed.topic, REPLY_MODE_KEY, parsed.mode)
                self._record(chat_id, parsed, "system", parsed.text)
                await self.send(chat_id, parsed.text)
            case TopicCommand():
                self.store.set_topic_state(
                    chat_id, self.config.default_topic, ACTIVE_TOPIC_KEY, parsed.topic
                )
                self._record(chat_id, parsed, "system", parsed.text)
                await self.send(chat_id, parsed.text)
            case AgentCommand():
                self._record(chat_id, parsed, "system", parsed.text)
                await self.send(chat_id, parsed.text)
            case PlainText():
                await self._handle_text(chat_id, parsed)

    async def send(self, chat_id: int, text: str) -> None:
        for chunk in split_chunks(text):
            await self.telegram.send_message(chat_id, chunk)

    def active_topic(self, chat_id: int) -> str:
        default = self.config.default_topic
        return self.store.get_topic_state(chat_id, default, ACTIVE_TOPIC_KEY) or default

    def reply_mode(self, chat_id: int, topic: str) -> str:
        return self.store.get_topic_state(chat_id, topic, REPLY_MODE_KEY) or self.config.reply_mode

    def _record(self, chat_id: int, parsed: ParsedMessage, role: str, content: str) -> None:
        self.store.append(chat_id, parsed.topic, role, content, parsed.agent)

    async def _handle_text(self, chat_id: int, parsed: PlainText) -> None:
        if not parsed.text:
            return
        self._record(chat_id, parsed, "user", parsed.text)

        copilot = self.context.copilot
        if self.reply_mode(chat_id, parsed.topic) == "auto" and copilot.is_enabled:
            summary = self.store.continue_context(chat_id, parsed.topic).summary
            reply = await copilot.generate_reply(
                model_id=parsed.model_id,
                topic=parsed.topic,
                agent=parsed.agent,
                user_input=parsed.text,
                context_summary=summary,
            )
            self._record(chat_id, parsed, "assistant", reply)
            await self.send(chat_id, reply)
            return

        await self.send(
            chat_id,
            f"Message saved (topic={parsed.topic}, agent={parsed.agent},"
            f" model={parsed.model_id}).\n"
            "Manual reply mode: process this thread from your MCP client to answer it.",
        )

    async def _select_model(self, chat_id: int, parsed: ModelCommand) -> None:
        model = self.context.catalog.find_by_id(parsed.model_id)
        if model is None:
            await self.send(
                chat_id, f"Unknown model: {parsed.model_id}. Use /models to see the options."
            )
            return

        self.store.set_selected_model(chat_id, parsed.topic, model.id)
        self._record(chat_id, parsed, "system", parsed.text)
        await self.send(chat_id, parsed.text)

    async def _show_history(self, chat_id: int, parsed: HistoryCommand) -> None:
        if parsed.keyword:
            records = self.store.search(chat_id, parsed.keyword, HISTORY_PREVIEW)
        else:
            records = self.store.get_history(chat_id, parsed.topic, HISTORY_PREVIEW)

        if not records:
            await self.send(chat_id, "No history found.")
            return

        lines = ["History preview:"]
        for record in records:
            content = re.sub(r"\s+", " ", record.content)[:PREVIEW_CHARS]
            lines.append(f"{record.role}: {content}")
        await self.send(chat_id, "\n".join(lines))

    async def _show_paper(self, chat_id: int, parsed: PaperCommand) -> None:
        paper = self._active_paper(chat_id, parsed.topic)
        if paper is None:
            await self.send(chat_id, "No active paper in this topic. Send a PDF first.")
            return

        await self.send(
            chat_id,
            "\n".join(
                [
                    f"Active paper: {paper.title}",
                    f"Category: {paper.category}",
                    f"Summary: {paper.summary[:1200]}",
                    "Ask with: /ask <question>",
                ]
            ),
        )

    async def _ask_paper(self, chat_id: int, parsed: AskCommand) -> None:
        paper = self._active_paper(chat_id, parsed.topic)
        if paper is None:
            await self.send(chat_id, "No paper to ask about. Send a PDF first.")
            return

        question = parsed.question.strip()
        if not question:
            await self.send(chat_id, "Usage: /ask <question>")
            return

        papers = self.context.papers
        paper_context = papers.build_context(paper, question)
        self._record(chat_id, parsed, "user", question)
        self._record(
            chat_id, parsed, "system", f"[paper-context]\n{paper_context[:PAPER_CONTEXT_CHARS]}"
        )

        copilot = self.context.copilot
        if copilot.is_enabled:
            summary = self.store.continue_context(chat_id, parsed.topic).summary
            answer = await copilot.generate_reply(
                model_id=parsed.model_id,
                topic=parsed.topic,
                agent=parsed.agent,
                user_input=question,
                context_summary=summary,
                extra_context=paper_context,
            )
            self._record(chat_id, parsed, "assistant", answer)
        else:
            answer = papers.answer_question(paper, question)
        await self.send(chat_id, answer)

    async def _ingest_document(self, message: TelegramMessage, parsed: ParsedMessage) -> None:
        chat_id = message.chat.id
        document = message.document
        try:
            info = await self.telegram.get_file(document.file_id)
            if not info.file_path:
                raise BridgeError("Telegram returned no file_path for the document")
            data = await self.telegram.download_file(info.file_path)
            record = self.context.papers.ingest_pdf(
                chat_id, parsed.topic, document.file_name or "paper.pdf", data
            )
        except BridgeError as e:
            logger.warning(f"PDF ingestion failed for chat {chat_id}: {e}")
            await self.send(chat_id, f"PDF processing failed: {e}")
            return

        self.store.set_topic_state(chat_id, parsed.topic, ACTIVE_PAPER_KEY, record.pdf_path)
        self._record(
            chat_id,
            parsed,
            "system",
            f"[paper] title={record.title}; category={record.category}; path={record.pdf_path}",
        )
        await self.send(
            chat_id,
            "\n".join(
                [
                    f"Paper saved: {record.title}",
                    f"Category: {record.category}",
                    f"Path: {record.pdf_path}",
                    f"Summary: {record.summary[:1000]}",
                    "Ask about it with: /ask <question>",
                ]
            ),
        )

    def _active_paper(self, chat_id: int, topic: str):
        path = self.store.get_topic_state(chat_id, topic, ACTIVE_PAPER_KEY)
        return self.context.papers.get_paper_by_path(path)
