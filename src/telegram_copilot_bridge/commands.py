"""Chat command parsing.

Turns raw chat text into a tagged intent. Slash commands switch the
thread profile or query it; everything else is a plain payload that
carries the active topic, agent and model forward.

Recognized commands (case-insensitive, optional @botname suffix):
    /start                 Show the welcome message
    /topic <name>          Switch topic
    /agent <name>          Switch agent
    /mode manual|auto      Switch reply mode
    /model <id>            Switch model
    /models                List available models
    /history [keyword]     Show recent history or search it
    /paper                 Show the active PDF attachment
    /ask [question]        Ask about the active PDF attachment

A command whose argument does not match its pattern is treated as plain
text, so "/topic" alone is forwarded unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from .models import BridgeModel, Profile

TOPIC_RE = re.compile(r"^[\w\-]{1,64}$", re.ASCII)
AGENT_RE = re.compile(r"^[\w\-.]{1,64}$", re.ASCII)
MODEL_RE = re.compile(r"^[\w\-.:/]{1,96}$", re.ASCII)
MODE_RE = re.compile(r"^(manual|auto)$", re.IGNORECASE)

START_HINT = "Show welcome message"

_COMMAND_RE = re.compile(r"^/(\w+)(?:@\w+)?(?:\s+(.*))?$", re.DOTALL)


@dataclass
class ParsedCommand:
    """A slash command split into name and argument string."""

    name: str
    args: str
    raw: str


def parse_slash_command(text: str) -> ParsedCommand | None:
    """Parse a slash command from user input.

    Returns:
        ParsedCommand if input starts with /, None otherwise

    Examples:
        "/history" -> ParsedCommand(name="history", args="", raw="/history")
        "/topic@my_bot ops" -> ParsedCommand(name="topic", args="ops", raw="/topic@my_bot ops")
    """
    if not text.startswith("/"):
        return None

    match = _COMMAND_RE.match(text)
    if not match:
        return None

    return ParsedCommand(
        name=match.group(1).lower(),
        args=(match.group(2) or "").strip(),
        raw=text,
    )


# =============================================================================
# Intent variants
# =============================================================================


class _Intent(BridgeModel):
    topic: str
    agent: str
    model_id: str
    text: str


class StartCommand(_Intent):
    command: Literal["start"] = "start"


class TopicCommand(_Intent):
    command: Literal["topic"] = "topic"


class AgentCommand(_Intent):
    command: Literal["agent"] = "agent"


class ModeCommand(_Intent):
    command: Literal["mode"] = "mode"
    mode: Literal["manual", "auto"]


class ModelCommand(_Intent):
    command: Literal["model"] = "model"


class ModelsCommand(_Intent):
    command: Literal["models"] = "models"


class HistoryCommand(_Intent):
    command: Literal["history"] = "history"
    keyword: str = ""


class PaperCommand(_Intent):
    command: Literal["paper"] = "paper"


class AskCommand(_Intent):
    command: Literal["ask"] = "ask"
    question: str = ""


class PlainText(_Intent):
    command: Literal["text"] = "text"


ParsedMessage = Annotated[
    Union[
        StartCommand,
        TopicCommand,
        AgentCommand,
        ModeCommand,
        ModelCommand,
        ModelsCommand,
        HistoryCommand,
        PaperCommand,
        AskCommand,
        PlainText,
    ],
    Field(discriminator="command"),
]

parsed_message_adapter: TypeAdapter[ParsedMessage] = TypeAdapter(ParsedMessage)


def parse_message(text: str | None, profile: Profile) -> ParsedMessage:
    """Classify chat text against the thread's current profile.

    Args:
        text: Raw message text (None is treated as empty)
        profile: Active topic, agent and model for the thread

    Returns:
        One intent variant; switch commands carry the new value
    """
    raw = (text or "").strip()
    current = {"topic": profile.topic, "agent": profile.agent, "model_id": profile.model_id}

    command = parse_slash_command(raw)
    if command is None:
        return PlainText(text=raw, **current)

    args = command.args
    match command.name:
        case "start" if not args:
            return StartCommand(text=START_HINT, **current)

        case "topic" if TOPIC_RE.match(args):
            return TopicCommand(text=f"Topic changed to {args}", **{**current, "topic": args})

        case "agent" if AGENT_RE.match(args):
            return AgentCommand(text=f"Agent changed to {args}", **{**current, "agent": args})

        case "mode" if MODE_RE.match(args):
            mode = args.lower()
            return ModeCommand(text=f"Reply mode changed to {mode}", mode=mode, **current)

        case "model" if MODEL_RE.match(args):
            return ModelCommand(text=f"Model changed to {args}", **{**current, "model_id": args})

        case "models" if not args:
            return ModelsCommand(text="List models", **current)

        case "history":
            return HistoryCommand(text="History query", keyword=args, **current)

        case "paper" if not args:
            return PaperCommand(text="Show active paper", **current)

        case "ask":
            return AskCommand(text=args, question=args, **current)

        case _:
            return PlainText(text=raw, **current)
