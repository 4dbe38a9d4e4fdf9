"""Extraction backends: prompt + schema in, typed JSON out."""

import os

from concert_agent.core.enums import ExtractionBackendName
from concert_agent.services.extraction.base import ExtractionBackend, ScrapeResponse


class MissingCredentialsError(RuntimeError):
    """The selected extraction backend has no API key configured."""


def get_extraction_backend(
    name: ExtractionBackendName | str | None = None,
    user_agent: str = "ConcertAgent/0.1",
    timeout: float = 60.0,
) -> ExtractionBackend:
    """
    Build the extraction backend selected by name or EXTRACTION_BACKEND.

    Raises:
        MissingCredentialsError: If the backend's API key is not set.
    """
    name = ExtractionBackendName(
        (name or os.environ.get("EXTRACTION_BACKEND") or "firecrawl").lower()
    )

    if name == ExtractionBackendName.FIRECRAWL:
        from concert_agent.services.extraction.firecrawl import FirecrawlBackend

        api_key = os.environ.get("FIRECRAWL_API_KEY")
        if not api_key:
            raise MissingCredentialsError("FIRECRAWL_API_KEY not configured")
        return FirecrawlBackend(api_key=api_key, timeout=timeout * 2)

    from concert_agent.services.ai.client import AIProvider, get_ai_client
    from concert_agent.services.extraction.llm import LLMBackend

    provider = AIProvider((os.environ.get("AI_PROVIDER") or "anthropic").lower())
    key_var = "ANTHROPIC_API_KEY" if provider == AIProvider.ANTHROPIC else "OPENAI_API_KEY"
    api_key = os.environ.get(key_var)
    if not api_key:
        raise MissingCredentialsError(f"{key_var} not configured")
    ai_client = get_ai_client(provider, api_key, model=os.environ.get("AI_MODEL"))
    return LLMBackend(ai_client=ai_client, user_agent=user_agent, timeout=timeout)


__all__ = [
    "ExtractionBackend",
    "MissingCredentialsError",
    "ScrapeResponse",
    "get_extraction_backend",
]
