"""AI provider implementations."""

from concert_agent.services.ai.providers.anthropic import AnthropicClient
from concert_agent.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
