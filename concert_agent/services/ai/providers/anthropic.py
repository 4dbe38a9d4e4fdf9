"""Anthropic (Claude) AI provider implementation."""

import logging
from typing import Any

from concert_agent.core.errors import QuotaExhausted, RateLimited, TransientSourceError
from concert_agent.services.ai.client import AIClient, AIProvider, parse_json_response
from concert_agent.services.ai.prompts import SYSTEM_PROMPT, build_page_prompt

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

_QUOTA_MARKERS = ("credit balance", "billing", "quota")


class AnthropicClient(AIClient):
    """Anthropic Claude AI client."""

    provider = AIProvider.ANTHROPIC

    def __init__(self, api_key: str, model: str | None = None, client: Any = None):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Model name (defaults to claude-sonnet-4-20250514).
            client: Pre-built async client (tests inject a mock here).
        """
        import anthropic

        self._anthropic = anthropic
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    async def extract_events(self, page_text: str, instruction: str) -> dict[str, Any]:
        """Extract events from page text using Claude."""
        prompt = build_page_prompt(instruction, page_text)
        anthropic = self._anthropic

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=8192,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            retry_after = e.response.headers.get("retry-after") if e.response is not None else None
            raise RateLimited(f"Anthropic rate limit: {e}", _as_float(retry_after)) from e
        except anthropic.APIStatusError as e:
            message = str(e).lower()
            if e.status_code == 402 or any(marker in message for marker in _QUOTA_MARKERS):
                raise QuotaExhausted(f"Anthropic quota exhausted: {e}") from e
            raise TransientSourceError(f"Anthropic API error: {e}") from e
        except anthropic.APIError as e:
            raise TransientSourceError(f"Anthropic API error: {e}") from e

        raw_response = response.content[0].text
        logger.debug(f"Raw AI response: {raw_response[:500]}...")
        return parse_json_response(raw_response)

    async def aclose(self) -> None:
        await self.client.close()


def _as_float(value: str | None) -> float | None:
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None
