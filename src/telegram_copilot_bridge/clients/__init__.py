"""External collaborators: Telegram, the inference backend, models and papers."""

from .catalog import ModelCatalog, ModelInfo
from .copilot import CopilotClient
from .papers import PaperManager, PaperRecord
from .telegram import TelegramClient, TelegramMessage, TelegramUpdate

__all__ = [
    "CopilotClient",
    "ModelCatalog",
    "ModelInfo",
    "PaperManager",
    "PaperRecord",
    "TelegramClient",
    "TelegramMessage",
    "TelegramUpdate",
]
