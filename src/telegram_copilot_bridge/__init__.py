"""Telegram Copilot Bridge.

MCP server and polling daemon connecting Telegram chats to Copilot, backed
by a durable per-thread conversation log.
"""

__version__ = "0.1.0"
