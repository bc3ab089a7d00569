"""Thin completion client over the Anthropic Messages API.

Every LLM interaction in the radar (plan generation, section synthesis,
relevance scoring, narrative summaries) is a single system + user prompt
turned into free text, so the client exposes exactly that.

The Anthropic client is lazy-initialised so that the class can be
instantiated in tests without requiring a live API key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import anthropic

from radar.errors import ConfigurationError, UpstreamError

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


@dataclass
class Completion:
    """Text returned by one completion call."""

    content: str
    model: str
    usage: dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """Sends prompts to the configured model and returns plain text."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            if not self.settings.anthropic_api_key:
                raise ConfigurationError(
                    "LLM API key missing. Set ANTHROPIC_API_KEY in server environment."
                )
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                base_url=self.settings.llm_base_url,
                timeout=self.settings.llm_timeout,
                max_retries=3,
            )
        return self._client

    def complete(
        self,
        prompt: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """Run one completion.

        Args:
            prompt: The user message.
            system_prompt: Instructions for the model.
            model: Overrides the configured model.
            max_tokens: Overrides the configured output budget.

        Returns:
            A ``Completion`` with the concatenated text blocks.

        Raises:
            ConfigurationError: If no API key is configured.
            UpstreamError: On any provider or transport failure, timeouts included.
        """
        model = model or self.settings.llm_model
        max_tokens = max_tokens or self.settings.llm_max_tokens
        client = self.client

        logger.info(
            "LLM request model=%s max_tokens=%d prompt_chars=%d",
            model, max_tokens, len(prompt),
        )
        try:
            response = client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=self.settings.llm_temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            logger.warning("LLM request failed model=%s: %s", model, exc)
            raise UpstreamError(f"LLM request failed: {exc}") from exc

        content = "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )
        usage = getattr(response, "usage", None)
        return Completion(
            content=content,
            model=getattr(response, "model", model) or model,
            usage={
                "input_tokens": getattr(usage, "input_tokens", 0),
                "output_tokens": getattr(usage, "output_tokens", 0),
            },
        )
