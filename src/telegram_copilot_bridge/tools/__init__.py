"""MCP tool surface."""

from .builtin import build_start_message, builtin_tools, create_context
from .registry import NoArguments, ToolArguments, ToolContext, ToolDefinition, ToolRegistry

__all__ = [
    "NoArguments",
    "ToolArguments",
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "build_start_message",
    "builtin_tools",
    "create_context",
]
