"""Byte-stream transports for the MCP server."""

from .framing import StreamFramer, WireMode, encode_responses
from .stdio import StdioBridgeServer

__all__ = [
    "StdioBridgeServer",
    "StreamFramer",
    "WireMode",
    "encode_responses",
]
