"""Catalog of models a thread can switch to."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class ModelInfo(BaseModel):
    """One selectable model."""

    id: str
    name: str
    provider: str
    pricing: str = ""


BUILTIN_MODELS = [
    ModelInfo(id="gpt-4o", name="GPT-4o", provider="OpenAI", pricing="included"),
    ModelInfo(id="gpt-4o-mini", name="GPT-4o mini", provider="OpenAI", pricing="included"),
    ModelInfo(id="o3-mini", name="o3-mini", provider="OpenAI", pricing="premium"),
    ModelInfo(
        id="claude-3.5-sonnet", name="Claude 3.5 Sonnet", provider="Anthropic", pricing="premium"
    ),
]

_models_adapter = TypeAdapter(list[ModelInfo])


class ModelCatalog:
    """Model list read from a JSON file, or the built-in list if it is missing.

    File format: a JSON array of {"id", "name", "provider", "pricing"} objects.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path).expanduser() if path else None
        self._models = self._load()

    def _load(self) -> list[ModelInfo]:
        if self.path is None or not self.path.exists():
            return list(BUILTIN_MODELS)
        try:
            models = _models_adapter.validate_python(
                json.loads(self.path.read_text(encoding="utf-8"))
            )
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable model catalog {self.path}: {e}")
            return list(BUILTIN_MODELS)
        logger.info(f"Loaded {len(models)} models from {self.path}")
        return models

    def list(self) -> list[ModelInfo]:
        return list(self._models)

    def find_by_id(self, model_id: str) -> ModelInfo | None:
        for model in self._models:
            if model.id == model_id:
                return model
        return None

    def format_list(self) -> str:
        """Human-readable list for chat replies."""
        lines = ["Available Copilot models:"]
        for model in self._models:
            lines.append(f"- {model.id} | {model.name} | {model.provider}")
            if model.pricing:
                lines.append(f"  pricing: {model.pricing}")
        return "\n".join(lines)
