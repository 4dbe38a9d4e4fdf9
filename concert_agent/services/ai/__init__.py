"""LLM providers used for structured event extraction."""

from concert_agent.services.ai.client import AIClient, AIProvider, get_ai_client

__all__ = [
    "AIClient",
    "AIProvider",
    "get_ai_client",
]
