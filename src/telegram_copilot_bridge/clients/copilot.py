"""Chat-completions client used to draft Copilot replies."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import BridgeConfig
from ..errors import CopilotError, CredentialMissingError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the Telegram Copilot assistant.
Current topic: {topic}
Current agent: {agent}
Guidelines:
- Answer from the provided context and evidence first.
- Say so plainly when the evidence is insufficient.
- Keep replies short and direct, suitable for reading in Telegram."""


class CopilotClient:
    """OpenAI-compatible chat completions client.

    Disabled when neither COPILOT_API_KEY nor GITHUB_TOKEN is configured;
    generate_reply() then fails with CredentialMissingError.
    """

    def __init__(self, config: BridgeConfig, http: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(60.0))

    @property
    def is_enabled(self) -> bool:
        return bool(self.config.copilot_api_key)

    async def generate_reply(
        self,
        model_id: str,
        topic: str,
        agent: str,
        user_input: str,
        context_summary: str,
        extra_context: str | None = None,
    ) -> str:
        """Ask the backend for a reply to user_input.

        Args:
            model_id: Model to use (falls back to the configured default)
            topic: Thread topic, included in the system prompt
            agent: Thread agent label, included in the system prompt
            user_input: The user's message
            context_summary: Compact thread summary from the session store
            extra_context: Optional additional evidence (e.g. PDF excerpts)

        Returns:
            The reply text

        Raises:
            CredentialMissingError: If no API key is configured
            CopilotError: If the backend fails or returns no content
        """
        if not self.is_enabled:
            raise CredentialMissingError(
                "COPILOT_API_KEY or GITHUB_TOKEN is required for Copilot replies"
            )

        sections = [f"Conversation summary:\n{context_summary or 'none'}"]
        if extra_context:
            sections.append(f"Additional context:\n{extra_context}")
        sections.append(f"User input:\n{user_input}")

        payload: dict[str, Any] = {
            "model": model_id or self.config.default_model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT.format(topic=topic, agent=agent)},
                {"role": "user", "content": "\n\n".join(sections)},
            ],
        }

        try:
            response = await self._http.post(
                self.config.copilot_completions_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.copilot_api_key}"},
            )
        except httpx.HTTPError as e:
            raise CopilotError(f"Copilot completion request failed: {e}") from e
        if response.status_code >= 400:
            raise CopilotError(f"Copilot completion failed: {response.status_code} {response.text}")

        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            text = None
        if not text or not str(text).strip():
            raise CopilotError("Copilot completion returned empty content")

        logger.debug(f"Copilot reply generated with model {payload['model']}")
        return str(text).strip()

    async def aclose(self) -> None:
        await self._http.aclose()
