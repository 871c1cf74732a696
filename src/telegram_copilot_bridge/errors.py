"""Exception hierarchy for the bridge.

Framing and parse errors are recovered inside the transport. Everything
derived from ToolExecutionError is reported to the caller as a JSON-RPC
error response. ConfigurationError is only raised while starting up.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigurationError(BridgeError):
    """Required startup configuration is missing or invalid."""


class FramingError(BridgeError):
    """A header block could not be turned into a frame."""


class PayloadParseError(BridgeError):
    """A frame body is not valid JSON or not a valid JSON-RPC payload."""


class ToolExecutionError(BridgeError):
    """A tool call failed. The message is returned to the caller verbatim."""


class UnknownToolError(ToolExecutionError):
    """No tool is registered under the requested name."""


class CredentialMissingError(ToolExecutionError):
    """An optional credential needed by this tool is not configured."""


class TelegramError(ToolExecutionError):
    """The Telegram Bot API rejected a request."""


class CopilotError(ToolExecutionError):
    """The inference backend failed to produce a reply."""


class PaperError(ToolExecutionError):
    """A PDF could not be ingested or read back."""
