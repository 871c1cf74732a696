"""Telegram Copilot Bridge CLI.

Default mode is the MCP server over stdio.

Usage:
    telegram-copilot-bridge                          # MCP server on stdio (default)
    telegram-copilot-bridge serve                    # Same, explicitly
    telegram-copilot-bridge daemon                   # Poll Telegram and answer chats

    telegram-copilot-bridge history threads          # List conversation threads
    telegram-copilot-bridge history show <chat-id>   # Show a thread's messages
    telegram-copilot-bridge history search <chat-id> <keyword>

    telegram-copilot-bridge offset                   # Show the Telegram update offset
    telegram-copilot-bridge offset --set 100         # Move it
    telegram-copilot-bridge models                   # List selectable models
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import datetime

import click

from . import __version__
from .config import BridgeConfig
from .errors import ConfigurationError
from .session_store import SessionStore

logger = logging.getLogger(__name__)

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def format_timestamp(ms: int | None) -> str:
    """Format epoch milliseconds for display."""
    if ms is None:
        return "N/A"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def configure_logging(level: str) -> None:
    """Send logs to stderr; stdout carries protocol bytes."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr, force=True)


def load_config(require_telegram_token: bool = False) -> BridgeConfig:
    try:
        return BridgeConfig.from_env(require_telegram_token=require_telegram_token)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def format_option(func):
    return click.option(
        "--format",
        "-f",
        "output_format",
        type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
        default=FORMAT_TABLE,
        help="Output format",
    )(func)


@click.group(invoke_without_command=True)
@click.option(
    "--log-level",
    default=lambda: os.environ.get("LOG_LEVEL", "INFO"),
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (logs go to stderr)",
)
@click.version_option(version=__version__, prog_name="telegram-copilot-bridge")
@click.pass_context
def main(ctx: click.Context, log_level: str) -> None:
    """Telegram Copilot Bridge - MCP tools and a polling daemon for Telegram chats.

    By default, runs the MCP server over stdio.
    """
    configure_logging(log_level)

    # If a subcommand is invoked, let it handle everything
    if ctx.invoked_subcommand is not None:
        return

    _run_stdio_server()


@main.command("serve")
def serve() -> None:
    """Run the MCP server over stdio."""
    _run_stdio_server()


@main.command("daemon")
def daemon() -> None:
    """Poll Telegram and handle incoming messages."""
    from .daemon import BridgeDaemon
    from .tools.builtin import create_context

    config = load_config(require_telegram_token=True)

    async def run() -> None:
        context = create_context(config)
        try:
            await BridgeDaemon(context).run()
        finally:
            await _close_context(context)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


def _run_stdio_server() -> None:
    """Run the MCP server until stdin closes."""
    from .protocol.dispatcher import RpcDispatcher
    from .tools.builtin import builtin_tools, create_context
    from .transport.stdio import StdioBridgeServer

    config = load_config()

    async def run() -> None:
        context = create_context(config)
        try:
            await StdioBridgeServer(RpcDispatcher(builtin_tools, context)).run()
        finally:
            await _close_context(context)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


async def _close_context(context) -> None:
    await context.telegram.aclose()
    await context.copilot.aclose()
    context.store.close()


# =============================================================================
# History Commands
# =============================================================================


@main.group()
def history() -> None:
    """Inspect stored conversations."""


@history.command("threads")
@click.option("--chat-id", type=int, default=None, help="Only threads of this chat")
@format_option
def history_threads(chat_id: int | None, output_format: str) -> None:
    """List conversation threads, most recent first.

    Examples:

        telegram-copilot-bridge history threads

        telegram-copilot-bridge history threads --chat-id 42 --format json
    """
    with SessionStore(load_config()) as store:
        threads = store.list_threads(chat_id)

    if output_format == FORMAT_JSON:
        click.echo(json.dumps([t.to_wire() for t in threads], indent=2, ensure_ascii=False))
        return

    if not threads:
        click.echo("No threads found.")
        return

    click.echo(f"{'Chat':<16} {'Topic':<20} {'Messages':>8} {'Updated':<17}")
    click.echo("-" * 64)
    for thread in threads:
        topic = truncate(thread.topic, 20)
        updated = format_timestamp(thread.updated_at)
        click.echo(f"{thread.chat_id:<16} {topic:<20} {thread.message_count:>8} {updated:<17}")

    click.echo(f"\nTotal: {len(threads)} thread(s)")


@history.command("show")
@click.argument("chat_id", type=int)
@click.option("--topic", "-t", default=None, help="Thread topic (default: configured topic)")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, help="Messages to show")
@format_option
def history_show(chat_id: int, topic: str | None, limit: int, output_format: str) -> None:
    """Show the latest messages of a thread, oldest first."""
    with SessionStore(load_config()) as store:
        messages = store.get_history(chat_id, topic, limit)
    _print_messages(messages, output_format)


@history.command("search")
@click.argument("chat_id", type=int)
@click.argument("keyword")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, help="Maximum matches")
@format_option
def history_search(chat_id: int, keyword: str, limit: int, output_format: str) -> None:
    """Search a chat's messages for KEYWORD, newest first."""
    with SessionStore(load_config()) as store:
        messages = store.search(chat_id, keyword, limit)
    _print_messages(messages, output_format)


def _print_messages(messages: list, output_format: str) -> None:
    if output_format == FORMAT_JSON:
        click.echo(json.dumps([m.to_wire() for m in messages], indent=2, ensure_ascii=False))
        return

    if not messages:
        click.echo("No messages found.")
        return

    for message in messages:
        when = format_timestamp(message.created_at)
        click.echo(f"[{when}] {message.topic}/{message.role}: {truncate(message.content, 100)}")


# =============================================================================
# State Commands
# =============================================================================


@main.command("offset")
@click.option("--set", "new_offset", type=click.IntRange(min=0), default=None, help="New offset")
def offset(new_offset: int | None) -> None:
    """Show or set the last processed Telegram update offset."""
    with SessionStore(load_config()) as store:
        if new_offset is not None:
            store.set_offset(new_offset)
        click.echo(str(store.get_offset()))


@main.command("models")
@format_option
def models(output_format: str) -> None:
    """List selectable models."""
    from .clients.catalog import ModelCatalog

    catalog = ModelCatalog(load_config().model_catalog_path)
    entries = catalog.list()

    if output_format == FORMAT_JSON:
        click.echo(json.dumps([m.model_dump() for m in entries], indent=2, ensure_ascii=False))
        return

    click.echo(f"{'ID':<24} {'Name':<24} {'Provider':<12} {'Pricing':<10}")
    click.echo("-" * 74)
    for model in entries:
        click.echo(
            f"{truncate(model.id, 24):<24} {truncate(model.name, 24):<24}"
            f" {truncate(model.provider, 12):<12} {model.pricing:<10}"
        )


if __name__ == "__main__":
    main()
