"""JSON-RPC 2.0 and MCP type definitions.

Note: Field names use camelCase where the MCP schema does
(protocolVersion, serverInfo, inputSchema). Do not change to snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

# MCP protocol revision announced by initialize
PROTOCOL_VERSION = "2024-11-05"

SERVER_NAME = "telegram-copilot-bridge"


# =============================================================================
# JSON-RPC 2.0 Base Types
# =============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request. A request without an id is a notification."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None = None
    method: str
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response. Exactly one of result/error is set."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None
    result: Any | None = None
    error: JsonRpcError | None = None

    @classmethod
    def success(cls, request_id: str | int | None, result: Any) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: str | int | None,
        code: int,
        message: str,
    ) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message))

    def to_wire(self) -> dict[str, Any]:
        """Dict form with either result or error, never both."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result
        return data


class JsonRpcErrorCode:
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server-defined: any tool or handler failure
    SERVER_ERROR = -32000


# =============================================================================
# MCP Types
# =============================================================================


class ServerInfo(BaseModel):
    """Information about this server."""

    name: str
    version: str


class ServerCapabilities(BaseModel):
    """Capabilities announced to the client. Only tools are offered."""

    tools: dict[str, Any] = Field(default_factory=dict)


class InitializeResult(BaseModel):
    """Response to the initialize method."""

    protocolVersion: str = PROTOCOL_VERSION
    serverInfo: ServerInfo
    capabilities: ServerCapabilities = Field(default_factory=ServerCapabilities)


class ToolDescriptor(BaseModel):
    """One entry of the tools/list result."""

    name: str
    description: str
    inputSchema: dict[str, Any]


class ToolCallParams(BaseModel):
    """Parameters of tools/call."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class TextContent(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str


class ToolCallResult(BaseModel):
    """Result of tools/call: the tool output as one JSON text block."""

    content: list[TextContent]
