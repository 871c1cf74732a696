"""Built-in tools exposed over MCP.

Every tool is registered under its canonical underscore name and its dotted
legacy name. Handlers receive validated argument models and return plain
data or pydantic models; the registry converts results to JSON.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import Field

from ..clients.catalog import ModelCatalog
from ..clients.copilot import CopilotClient
from ..clients.papers import PaperManager
from ..clients.telegram import TelegramClient
from ..commands import parse_message
from ..config import BridgeConfig
from ..errors import PaperError, ToolExecutionError
from ..models import Role
from ..session_store import ACTIVE_PAPER_KEY, SessionStore
from .registry import NoArguments, ToolArguments, ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

builtin_tools = ToolRegistry()


def build_start_message(config: BridgeConfig) -> str:
    """Welcome text sent for /start."""
    return "\n".join(
        [
            "Telegram Copilot Bridge is ready.",
            "",
            "Commands:",
            "/topic <name> - switch conversation topic",
            "/agent <name> - switch agent label",
            "/mode manual|auto - choose how replies are produced",
            "/models - list available models",
            "/model <id> - select a model for this topic",
            "/history [keyword] - show recent messages or search them",
            "/paper - show the active paper",
            "/ask <question> - ask about the active paper",
            "",
            "Send a PDF to add it to the paper library.",
            f"Project: {config.project_url}",
        ]
    )


def create_context(
    config: BridgeConfig,
    store: SessionStore | None = None,
    *,
    telegram: TelegramClient | None = None,
    copilot: CopilotClient | None = None,
) -> ToolContext:
    """Build the collaborators used by tool handlers."""
    return ToolContext(
        config=config,
        store=store or SessionStore(config),
        telegram=telegram or TelegramClient(config),
        copilot=copilot or CopilotClient(config),
        catalog=ModelCatalog(config.model_catalog_path),
        papers=PaperManager(config),
    )


# =============================================================================
# Argument models
# =============================================================================


class FetchUpdatesArgs(ToolArguments):
    offset: int | None = None


class SendMessageArgs(ToolArguments):
    chat_id: int
    text: str = Field(min_length=1)


class AppendArgs(ToolArguments):
    chat_id: int
    topic: str | None = None
    role: Role = "user"
    content: str = ""
    agent: str | None = None


class HistoryArgs(ToolArguments):
    chat_id: int
    topic: str | None = None
    limit: int | None = Field(default=None, ge=1)


class SearchArgs(ToolArguments):
    chat_id: int
    keyword: str = ""
    limit: int | None = Field(default=None, ge=1)


class ListThreadsArgs(ToolArguments):
    chat_id: int | None = None


class ContinueArgs(ToolArguments):
    chat_id: int
    topic: str | None = None
    limit: int = Field(default=20, ge=1)


class PrepareMessageArgs(ToolArguments):
    chat_id: int
    text: str = ""
    topic: str | None = None
    mode: Literal["manual", "auto"] | None = None


class SetOffsetArgs(ToolArguments):
    offset: int = 0


class ThreadArgs(ToolArguments):
    chat_id: int
    topic: str | None = None


class SelectModelArgs(ToolArguments):
    chat_id: int
    model_id: str = Field(min_length=1)
    topic: str | None = None


class AskPaperArgs(ToolArguments):
    chat_id: int
    question: str = Field(min_length=1)
    topic: str | None = None


class GenerateReplyArgs(ToolArguments):
    chat_id: int
    text: str = Field(min_length=1)
    topic: str | None = None
    extra_context: str | None = None


# =============================================================================
# Telegram
# =============================================================================


@builtin_tools.tool(
    name="telegram_fetch_updates",
    legacy_name="telegram.fetch_updates",
    description="Fetch Telegram updates",
    arguments=FetchUpdatesArgs,
)
async def fetch_updates(args: FetchUpdatesArgs, context: ToolContext) -> Any:
    return await context.telegram.get_updates(args.offset)


@builtin_tools.tool(
    name="telegram_send_message",
    legacy_name="telegram.send_message",
    description="Send a Telegram message",
    arguments=SendMessageArgs,
)
async def send_message(args: SendMessageArgs, context: ToolContext) -> dict[str, Any]:
    message_id = await context.telegram.send_message(args.chat_id, args.text)
    return {"ok": True, "messageId": message_id}


# =============================================================================
# Session log
# =============================================================================


@builtin_tools.tool(
    name="session_append",
    legacy_name="session.append",
    description="Append a message to a session thread",
    arguments=AppendArgs,
)
async def session_append(args: AppendArgs, context: ToolContext) -> Any:
    return context.store.append(
        chat_id=args.chat_id,
        topic=args.topic or context.config.default_topic,
        role=args.role,
        content=args.content,
        agent=args.agent or context.config.default_agent,
    )


@builtin_tools.tool(
    name="session_get_history",
    legacy_name="session.get_history",
    description="Get the recent history of a thread, oldest first",
    arguments=HistoryArgs,
)
async def session_get_history(args: HistoryArgs, context: ToolContext) -> Any:
    return context.store.get_history(args.chat_id, args.topic, args.limit)


@builtin_tools.tool(
    name="session_search",
    legacy_name="session.search",
    description="Search a chat's messages by keyword, newest first",
    arguments=SearchArgs,
)
async def session_search(args: SearchArgs, context: ToolContext) -> Any:
    return context.store.search(args.chat_id, args.keyword, args.limit)


@builtin_tools.tool(
    name="session_list_threads",
    legacy_name="session.list_threads",
    description="List conversation threads by recency",
    arguments=ListThreadsArgs,
)
async def session_list_threads(args: ListThreadsArgs, context: ToolContext) -> Any:
    return context.store.list_threads(args.chat_id)


@builtin_tools.tool(
    name="session_continue",
    legacy_name="session.continue",
    description="Load a thread's recent messages, agent and summary to resume it",
    arguments=ContinueArgs,
)
async def session_continue(args: ContinueArgs, context: ToolContext) -> Any:
    topic = args.topic or context.config.default_topic
    return context.store.continue_context(args.chat_id, topic, args.limit)


# =============================================================================
# Bridge state
# =============================================================================


@builtin_tools.tool(
    name="bridge_prepare_message",
    legacy_name="bridge.prepare_message",
    description="Classify Telegram text as a command or plain message",
    arguments=PrepareMessageArgs,
)
async def prepare_message(args: PrepareMessageArgs, context: ToolContext) -> dict[str, Any]:
    profile = context.store.get_current_profile(args.chat_id, args.topic)
    parsed = parse_message(args.text, profile)
    return {**parsed.to_wire(), "replyMode": args.mode or context.config.reply_mode}


@builtin_tools.tool(
    name="bridge_get_offset",
    legacy_name="bridge.get_offset",
    description="Get the last processed Telegram update offset",
)
async def get_offset(args: NoArguments, context: ToolContext) -> dict[str, int]:
    return {"offset": context.store.get_offset()}


@builtin_tools.tool(
    name="bridge_set_offset",
    legacy_name="bridge.set_offset",
    description="Set the last processed Telegram update offset",
    arguments=SetOffsetArgs,
)
async def set_offset(args: SetOffsetArgs, context: ToolContext) -> dict[str, int]:
    return {"offset": context.store.set_offset(args.offset)}


@builtin_tools.tool(
    name="bridge_get_start_message",
    legacy_name="bridge.get_start_message",
    description="Get the /start welcome message",
)
async def get_start_message(args: NoArguments, context: ToolContext) -> dict[str, str]:
    return {"text": build_start_message(context.config)}


# =============================================================================
# Models
# =============================================================================


@builtin_tools.tool(
    name="models_list",
    legacy_name="models.list",
    description="List selectable Copilot models",
)
async def models_list(args: NoArguments, context: ToolContext) -> Any:
    return context.catalog.list()


@builtin_tools.tool(
    name="models_select",
    legacy_name="models.select",
    description="Select the model used for a thread",
    arguments=SelectModelArgs,
)
async def models_select(args: SelectModelArgs, context: ToolContext) -> dict[str, Any]:
    model = context.catalog.find_by_id(args.model_id)
    if model is None:
        raise ToolExecutionError(f"Unknown model: {args.model_id}")

    topic = args.topic or context.config.default_topic
    context.store.set_selected_model(args.chat_id, topic, model.id)
    return {"chatId": args.chat_id, "topic": topic, "model": model}


@builtin_tools.tool(
    name="models_get_selected",
    legacy_name="models.get_selected",
    description="Get the model selected for a thread",
    arguments=ThreadArgs,
)
async def models_get_selected(args: ThreadArgs, context: ToolContext) -> dict[str, Any]:
    topic = args.topic or context.config.default_topic
    model_id = context.store.get_selected_model(args.chat_id, topic)
    return {
        "chatId": args.chat_id,
        "topic": topic,
        "modelId": model_id,
        "model": context.catalog.find_by_id(model_id),
    }


# =============================================================================
# Papers and replies
# =============================================================================


def _active_paper(context: ToolContext, chat_id: int, topic: str):
    path = context.store.get_topic_state(chat_id, topic, ACTIVE_PAPER_KEY)
    return context.papers.get_paper_by_path(path)


@builtin_tools.tool(
    name="paper_get_active",
    legacy_name="paper.get_active",
    description="Get the paper currently active in a thread",
    arguments=ThreadArgs,
)
async def paper_get_active(args: ThreadArgs, context: ToolContext) -> Any:
    topic = args.topic or context.config.default_topic
    return _active_paper(context, args.chat_id, topic)


@builtin_tools.tool(
    name="paper_ask",
    legacy_name="paper.ask",
    description="Answer a question from the thread's active paper and build reply context",
    arguments=AskPaperArgs,
)
async def paper_ask(args: AskPaperArgs, context: ToolContext) -> dict[str, Any]:
    topic = args.topic or context.config.default_topic
    paper = _active_paper(context, args.chat_id, topic)
    if paper is None:
        raise PaperError("No active paper in this thread; send a PDF first")

    return {
        "paper": paper,
        "answer": context.papers.answer_question(paper, args.question),
        "context": context.papers.build_context(paper, args.question),
    }


@builtin_tools.tool(
    name="copilot_generate_reply",
    legacy_name="copilot.generate_reply",
    description="Generate a reply for a thread with the selected model",
    arguments=GenerateReplyArgs,
)
async def generate_reply(args: GenerateReplyArgs, context: ToolContext) -> dict[str, Any]:
    profile = context.store.get_current_profile(args.chat_id, args.topic)
    summary = context.store.continue_context(args.chat_id, profile.topic).summary
    reply = await context.copilot.generate_reply(
        model_id=profile.model_id,
        topic=profile.topic,
        agent=profile.agent,
        user_input=args.text,
        context_summary=summary,
        extra_context=args.extra_context,
    )
    return {"modelId": profile.model_id, "text": reply}
