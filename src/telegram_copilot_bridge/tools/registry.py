"""Tool registry for the MCP tool surface.

Architecture:
- ToolDefinition: Describes a tool (canonical name, legacy alias, argument model, handler)
- ToolRegistry: Closed table of definitions plus an alias -> canonical name map
- ToolContext: Collaborators passed to every handler

Canonical names use underscores (session_get_history). Each tool may also be
reachable through its dotted legacy name (session.get_history); both resolve
through the alias table to the same definition.

Usage:
    registry = ToolRegistry()

    @registry.tool(
        name="bridge_get_offset",
        legacy_name="bridge.get_offset",
        description="Get last processed Telegram update offset",
    )
    async def get_offset(args: NoArguments, context: ToolContext) -> dict:
        return {"offset": context.store.get_offset()}
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..errors import UnknownToolError
from ..protocol.types import ToolDescriptor

if TYPE_CHECKING:
    from ..clients.catalog import ModelCatalog
    from ..clients.copilot import CopilotClient
    from ..clients.papers import PaperManager
    from ..clients.telegram import TelegramClient
    from ..config import BridgeConfig
    from ..session_store import SessionStore

logger = logging.getLogger(__name__)


class ToolArguments(BaseModel):
    """Base for tool argument models.

    Keys are camelCase on the wire (chatId, modelId); unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class NoArguments(ToolArguments):
    """Arguments of tools that take none."""


@dataclass
class ToolContext:
    """Collaborators available to tool handlers."""

    config: BridgeConfig
    store: SessionStore
    telegram: TelegramClient
    copilot: CopilotClient
    catalog: ModelCatalog
    papers: PaperManager


ToolHandler = Callable[[Any, ToolContext], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """Definition of one callable tool.

    Attributes:
        name: Canonical (underscore) name listed by tools/list
        description: Human-readable description for the model
        arguments: Pydantic model validating the call arguments
        handler: Async function receiving the validated arguments and context
        legacy_name: Dotted alias accepted by tools/call
    """

    name: str
    description: str
    arguments: type[ToolArguments]
    handler: ToolHandler
    legacy_name: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool name cannot be empty")
        if "." in self.name:
            raise ValueError(f"Canonical tool name must not contain dots: {self.name}")
        if not self.description:
            raise ValueError("Tool description cannot be empty")
        if not callable(self.handler):
            raise ValueError("Tool handler must be callable")

    @property
    def aliases(self) -> tuple[str, ...]:
        if self.legacy_name:
            return (self.name, self.legacy_name)
        return (self.name,)

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema of the arguments, keyed by their wire names."""
        return self.arguments.model_json_schema(by_alias=True)

    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
        )


def to_jsonable(value: Any) -> Any:
    """Convert handler results (models, lists, dicts) into plain JSON data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list | tuple):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


class ToolRegistry:
    """Registry of tool definitions with alias resolution.

    Example:
        registry = ToolRegistry()
        registry.register(definition)

        result = await registry.call("session.get_history", {"chatId": 1}, context)
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._aliases: dict[str, str] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool under its canonical name and legacy alias.

        Raises:
            ValueError: If any of its names is already taken
        """
        for alias in tool.aliases:
            if alias in self._aliases:
                raise ValueError(f"Tool name '{alias}' already registered")
        self._tools[tool.name] = tool
        for alias in tool.aliases:
            self._aliases[alias] = tool.name
        logger.debug(f"Registered tool: {tool.name}")

    def tool(
        self,
        name: str,
        description: str,
        *,
        legacy_name: str | None = None,
        arguments: type[ToolArguments] = NoArguments,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of register()."""

        def decorator(func: ToolHandler) -> ToolHandler:
            self.register(
                ToolDefinition(
                    name=name,
                    description=description,
                    arguments=arguments,
                    handler=func,
                    legacy_name=legacy_name,
                )
            )
            return func

        return decorator

    def resolve(self, name: str) -> ToolDefinition:
        """Look up a tool by canonical name or alias.

        Raises:
            UnknownToolError: If no tool answers to this name
        """
        canonical = self._aliases.get(name)
        if canonical is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        return self._tools[canonical]

    def aliases(self) -> dict[str, str]:
        """Copy of the alias -> canonical name table."""
        return dict(self._aliases)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def descriptors(self) -> list[ToolDescriptor]:
        return [tool.descriptor() for tool in self._tools.values()]

    async def call(self, name: str, arguments: dict[str, Any], context: ToolContext) -> Any:
        """Validate arguments and run a tool.

        Returns:
            The handler result converted to plain JSON data

        Raises:
            UnknownToolError: If the name does not resolve
            pydantic.ValidationError: If the arguments do not match the tool's model
            ToolExecutionError: If the handler or a collaborator fails
        """
        tool = self.resolve(name)
        args = tool.arguments.model_validate(arguments)
        logger.debug(f"Calling tool {tool.name} (requested as {name})")
        result = await tool.handler(args, context)
        return to_jsonable(result)

    @property
    def count(self) -> int:
        return len(self._tools)
