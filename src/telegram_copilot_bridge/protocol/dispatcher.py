"""RPC Dispatcher - routes JSON-RPC requests to MCP methods and tools.

Transport-agnostic: the framer hands over parsed requests and encodes
whatever comes back. A handler failure never escapes dispatch(); it
becomes a -32000 error response carrying the failure's message.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from .. import __version__
from ..tools.registry import ToolContext, ToolRegistry
from .types import (
    SERVER_NAME,
    InitializeResult,
    JsonRpcErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    ServerInfo,
    TextContent,
    ToolCallParams,
    ToolCallResult,
)

logger = logging.getLogger(__name__)


class RpcDispatcher:
    """Resolves requests to handlers and builds responses.

    Usage:
        dispatcher = RpcDispatcher(builtin_tools, create_context(config))
        response = await dispatcher.dispatch(request)
        if response is not None:
            send(response)

    Contract:
        - Requests with an id get exactly one response with the same id
        - Notifications and notifications/initialized get None
        - Unknown methods get -32601; handler failures get -32000
    """

    def __init__(self, registry: ToolRegistry, context: ToolContext) -> None:
        self.registry = registry
        self.context = context

    async def dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse | None:
        """Handle one request.

        Args:
            request: Parsed JSON-RPC request

        Returns:
            The response, or None when no response is due
        """
        logger.debug(f"Dispatching {request.method} (id={request.id})")

        if request.method == "notifications/initialized":
            return None

        try:
            match request.method:
                case "initialize":
                    result: Any = self._initialize()
                case "tools/list":
                    result = {"tools": self._list_tools()}
                case "tools/call":
                    result = await self._call_tool(request.params)
                case _:
                    if request.is_notification:
                        return None
                    return JsonRpcResponse.failure(
                        request.id,
                        JsonRpcErrorCode.METHOD_NOT_FOUND,
                        f"Method not found: {request.method}",
                    )
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {request.method}: {e}")
            return self._server_error(request, _validation_message(e))
        except Exception as e:
            logger.exception(f"Error handling {request.method}: {e}")
            return self._server_error(request, str(e) or type(e).__name__)

        if request.is_notification:
            return None
        return JsonRpcResponse.success(request.id, result)

    # =========================================================================
    # Methods
    # =========================================================================

    def _initialize(self) -> dict[str, Any]:
        info = InitializeResult(serverInfo=ServerInfo(name=SERVER_NAME, version=__version__))
        return info.model_dump()

    def _list_tools(self) -> list[dict[str, Any]]:
        return [descriptor.model_dump() for descriptor in self.registry.descriptors()]

    async def _call_tool(self, params: Any) -> dict[str, Any]:
        call = ToolCallParams.model_validate(params or {})
        output = await self.registry.call(call.name, call.arguments, self.context)
        text = json.dumps(output, ensure_ascii=False)
        return ToolCallResult(content=[TextContent(text=text)]).model_dump()

    @staticmethod
    def _server_error(request: JsonRpcRequest, message: str) -> JsonRpcResponse | None:
        if request.is_notification:
            return None
        return JsonRpcResponse.failure(request.id, JsonRpcErrorCode.SERVER_ERROR, message)


def _validation_message(error: ValidationError) -> str:
    """One-line summary of a pydantic validation error."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "Invalid arguments: " + "; ".join(parts)
