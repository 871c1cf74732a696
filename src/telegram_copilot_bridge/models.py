"""Conversation data models.

Field names are snake_case in Python and camelCase on the wire, so tool
results keep the shape MCP clients already expect (chatId, createdAt, ...).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant", "system"]


class BridgeModel(BaseModel):
    """Base model with camelCase serialization."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Message(BridgeModel):
    """A stored conversation message.

    `id` and `created_at` (epoch milliseconds) are assigned by the store.
    """

    id: int
    chat_id: int
    topic: str
    role: Role
    content: str
    agent: str
    created_at: int


class ThreadInfo(BridgeModel):
    """Aggregate view of one (chat_id, topic) thread."""

    chat_id: int
    topic: str
    message_count: int
    updated_at: int


class ContinueContext(BridgeModel):
    """Everything needed to resume a thread."""

    chat_id: int
    topic: str
    agent: str
    messages: list[Message] = Field(default_factory=list)
    summary: str


class Profile(BridgeModel):
    """The remembered (topic, agent, model) triple for a thread."""

    topic: str
    agent: str
    model_id: str
