"""JSON-RPC 2.0 / MCP protocol layer.

- types: request, response and MCP result models
- dispatcher: routes requests to MCP methods and registered tools
"""

from .types import (
    PROTOCOL_VERSION,
    SERVER_NAME,
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
)

__all__ = [
    "PROTOCOL_VERSION",
    "SERVER_NAME",
    "JsonRpcError",
    "JsonRpcErrorCode",
    "JsonRpcRequest",
    "JsonRpcResponse",
]
