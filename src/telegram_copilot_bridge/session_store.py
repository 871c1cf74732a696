"""
Durable conversation log for the bridge.

Messages are grouped into threads keyed by (chat_id, topic). Each thread is
capped at `session_retention_messages` rows and every row expires after
`session_retention_days`; both sweeps run synchronously on append.

Storage: a single SQLite file (DB_PATH), or an in-memory database for ":memory:".
Tables: session_messages (append-only log), bridge_state (key/value slots).
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from collections.abc import Callable
from typing import Any

from .config import BridgeConfig
from .models import ContinueContext, Message, Profile, Role, ThreadInfo

logger = logging.getLogger(__name__)

OFFSET_KEY = "telegram_offset"
SELECTED_MODEL_KEY = "selected_model"
ACTIVE_PAPER_KEY = "active_paper_path"

SUMMARY_WINDOW = 6
SUMMARY_CHARS = 180
EMPTY_SUMMARY = "No previous context."

DAY_MS = 24 * 60 * 60 * 1000

_SCHEMA = """
CREATE TABLE IF NOT EXISTS session_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL,
    topic TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    agent TEXT NOT NULL,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_session_lookup
    ON session_messages(chat_id, topic, created_at);
CREATE TABLE IF NOT EXISTS bridge_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""

_MESSAGE_COLUMNS = "id, chat_id, topic, role, content, agent, created_at"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        chat_id=row["chat_id"],
        topic=row["topic"],
        role=row["role"],
        content=row["content"],
        agent=row["agent"],
        created_at=row["created_at"],
    )


def summarize(messages: list[Message]) -> str:
    """Compact "role: content" lines for the last few messages."""
    if not messages:
        return EMPTY_SUMMARY
    lines = []
    for message in messages[-SUMMARY_WINDOW:]:
        content = re.sub(r"\s+", " ", message.content)[:SUMMARY_CHARS]
        lines.append(f"{message.role}: {content}")
    return "\n".join(lines)


def topic_state_key(chat_id: int, topic: str, key: str) -> str:
    """Key for a per-thread slot. The prefix keeps it apart from OFFSET_KEY."""
    return f"topic:{chat_id}:{topic}:{key}"


class SessionStore:
    """
    Ordered, bounded per-thread message log plus durable key/value slots.

    Contract:
    - Inputs: chat_id (int), topic (str), role/content/agent (str)
    - Outputs: Message / ThreadInfo / ContinueContext / Profile models
    - Ordering: history and continuation ascending by (created_at, id),
      search and thread listing newest first
    - Side Effects: every append prunes the thread to the retention cap and
      deletes rows older than the retention horizon
    - Errors: sqlite3.Error for storage failures
    """

    def __init__(
        self,
        config: BridgeConfig,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Open (or create) the store described by config.

        Args:
            config: Bridge configuration (db_path, retention, defaults)
            clock: Returns the current time in epoch milliseconds
        """
        self.config = config
        self._clock = clock or _now_ms

        db_file = config.db_file
        if db_file is not None:
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self.path = str(db_file)
        else:
            self.path = ":memory:"

        self._conn = sqlite3.connect(self.path)
        self._conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.executescript(_SCHEMA)
        logger.debug(f"Session store opened at {self.path}")

    @property
    def cap(self) -> int:
        return self.config.session_retention_messages

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> SessionStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # =========================================================================
    # Message log
    # =========================================================================

    def append(
        self,
        chat_id: int,
        topic: str,
        role: Role,
        content: str,
        agent: str,
    ) -> Message:
        """Append a message and run the retention sweeps.

        Returns:
            The stored message with its assigned id and timestamp
        """
        now = self._clock()
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO session_messages (chat_id, topic, role, content, agent, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?)",
                (chat_id, topic, role, content, agent, now),
            )
            message_id = cursor.lastrowid
            self._prune_thread(chat_id, topic)
            self._prune_expired(now)

        return Message(
            id=message_id,
            chat_id=chat_id,
            topic=topic,
            role=role,
            content=content,
            agent=agent,
            created_at=now,
        )

    def get_history(
        self,
        chat_id: int,
        topic: str | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """Most recent messages of a thread, oldest first.

        Args:
            chat_id: Chat identifier
            topic: Thread topic (default: configured default topic)
            limit: Maximum rows, never more than the retention cap
        """
        topic = topic or self.config.default_topic
        limit = self._clamp(limit)
        rows = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM session_messages"
            " WHERE chat_id = ? AND topic = ?"
            " ORDER BY created_at DESC, id DESC LIMIT ?",
            (chat_id, topic, limit),
        ).fetchall()
        return [_row_to_message(row) for row in reversed(rows)]

    def search(self, chat_id: int, keyword: str, limit: int | None = None) -> list[Message]:
        """Messages of any topic in a chat whose content contains keyword, newest first."""
        if not keyword:
            return []
        rows = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM session_messages"
            " WHERE chat_id = ? AND instr(content, ?) > 0"
            " ORDER BY created_at DESC, id DESC LIMIT ?",
            (chat_id, keyword, self._clamp(limit)),
        ).fetchall()
        return [_row_to_message(row) for row in rows]

    def list_threads(self, chat_id: int | None = None) -> list[ThreadInfo]:
        """Message count and last activity per thread, most recent first."""
        where = "WHERE chat_id = ?" if chat_id is not None else ""
        params: tuple[Any, ...] = (chat_id,) if chat_id is not None else ()
        rows = self._conn.execute(
            "SELECT chat_id, topic, COUNT(*) AS message_count, MAX(created_at) AS updated_at,"
            " MAX(id) AS last_id"
            f" FROM session_messages {where}"
            " GROUP BY chat_id, topic"
            " ORDER BY updated_at DESC, last_id DESC",
            params,
        ).fetchall()
        return [
            ThreadInfo(
                chat_id=row["chat_id"],
                topic=row["topic"],
                message_count=row["message_count"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def continue_context(self, chat_id: int, topic: str, limit: int = 20) -> ContinueContext:
        """Recent messages, current agent and a short summary for a thread."""
        messages = self.get_history(chat_id, topic, limit)
        agent = messages[-1].agent if messages else self.config.default_agent
        return ContinueContext(
            chat_id=chat_id,
            topic=topic,
            agent=agent,
            messages=messages,
            summary=summarize(messages),
        )

    def get_current_profile(self, chat_id: int, topic: str | None = None) -> Profile:
        """Topic/agent from the thread's latest message plus its selected model."""
        topic = topic or self.config.default_topic
        row = self._conn.execute(
            "SELECT topic, agent FROM session_messages"
            " WHERE chat_id = ? AND topic = ?"
            " ORDER BY created_at DESC, id DESC LIMIT 1",
            (chat_id, topic),
        ).fetchone()
        agent = row["agent"] if row else self.config.default_agent
        return Profile(
            topic=topic,
            agent=agent,
            model_id=self.get_selected_model(chat_id, topic),
        )

    # =========================================================================
    # Key/value slots
    # =========================================================================

    def get_offset(self) -> int:
        value = self._get_state(OFFSET_KEY)
        return int(value) if value is not None else 0

    def set_offset(self, offset: int) -> int:
        self._set_state(OFFSET_KEY, str(offset))
        return offset

    def get_topic_state(self, chat_id: int, topic: str, key: str) -> str | None:
        return self._get_state(topic_state_key(chat_id, topic, key))

    def set_topic_state(self, chat_id: int, topic: str, key: str, value: str) -> None:
        self._set_state(topic_state_key(chat_id, topic, key), value)

    def get_selected_model(self, chat_id: int, topic: str) -> str:
        selected = self.get_topic_state(chat_id, topic, SELECTED_MODEL_KEY)
        return selected or self.config.default_model

    def set_selected_model(self, chat_id: int, topic: str, model_id: str) -> None:
        self.set_topic_state(chat_id, topic, SELECTED_MODEL_KEY, model_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _clamp(self, limit: int | None) -> int:
        if limit is None:
            return self.cap
        return max(0, min(limit, self.cap))

    def _get_state(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM bridge_state WHERE key = ? LIMIT 1", (key,)
        ).fetchone()
        return row["value"] if row else None

    def _set_state(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO bridge_state (key, value, updated_at) VALUES (?, ?, ?)"
                " ON CONFLICT(key) DO UPDATE SET"
                " value = excluded.value, updated_at = excluded.updated_at",
                (key, value, self._clock()),
            )

    def _prune_thread(self, chat_id: int, topic: str) -> None:
        cursor = self._conn.execute(
            "DELETE FROM session_messages WHERE id IN ("
            " SELECT id FROM session_messages WHERE chat_id = ? AND topic = ?"
            " ORDER BY created_at DESC, id DESC LIMIT -1 OFFSET ?)",
            (chat_id, topic, self.cap),
        )
        if cursor.rowcount > 0:
            logger.debug(f"Pruned {cursor.rowcount} message(s) from thread {chat_id}/{topic}")

    def _prune_expired(self, now: int) -> None:
        cutoff = now - self.config.session_retention_days * DAY_MS
        cursor = self._conn.execute("DELETE FROM session_messages WHERE created_at < ?", (cutoff,))
        if cursor.rowcount > 0:
            logger.info(f"Expired {cursor.rowcount} message(s) older than the retention horizon")
