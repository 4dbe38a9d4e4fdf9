"""AI client interface and provider abstraction."""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from concert_agent.core.errors import ParseError


def parse_json_response(raw_response: str) -> dict[str, Any]:
    """
    Parse a model response into a JSON object.

    Strips markdown code fences if the model added them.

    Raises:
        ParseError: If the text is not a JSON object.
    """
    json_str = raw_response.strip()
    if json_str.startswith("```json"):
        json_str = json_str[7:]
    if json_str.startswith("```"):
        json_str = json_str[3:]
    if json_str.endswith("```"):
        json_str = json_str[:-3]
    json_str = json_str.strip()

    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ParseError(f"JSON parse error: {e}") from e
    if not isinstance(parsed, dict):
        raise ParseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


class AIProvider(str, Enum):
    """Supported AI providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class AIClient(ABC):
    """Abstract base class for AI providers."""

    provider: AIProvider
    model: str

    @abstractmethod
    async def extract_events(self, page_text: str, instruction: str) -> dict[str, Any]:
        """
        Extract structured events from page text.

        Args:
            page_text: Text content of the listing page.
            instruction: Category-specific extraction instruction.

        Returns:
            Parsed JSON object, expected to hold an ``events`` array.

        Raises:
            RateLimited: The provider asked us to slow down.
            QuotaExhausted: The account has no credit left.
            TransientSourceError: Any other API failure.
            ParseError: The response was not a JSON object.
        """

    async def aclose(self) -> None:
        """Release network resources."""


def get_ai_client(
    provider: AIProvider | str,
    api_key: str,
    model: str | None = None,
) -> AIClient:
    """
    Factory function to get an AI client for the specified provider.

    Args:
        provider: The AI provider to use.
        api_key: The API key for the provider.
        model: Optional model name override.

    Returns:
        An AIClient instance for the specified provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    if isinstance(provider, str):
        provider = AIProvider(provider.lower())

    if provider == AIProvider.ANTHROPIC:
        from concert_agent.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(api_key=api_key, model=model)
    elif provider == AIProvider.OPENAI:
        from concert_agent.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")
