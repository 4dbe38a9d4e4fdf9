"""OpenAI AI provider implementation."""

import logging
from typing import Any

from concert_agent.core.errors import QuotaExhausted, RateLimited, TransientSourceError
from concert_agent.services.ai.client import AIClient, AIProvider, parse_json_response
from concert_agent.services.ai.prompts import SYSTEM_PROMPT, build_page_prompt

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class OpenAIClient(AIClient):
    """OpenAI GPT AI client."""

    provider = AIProvider.OPENAI

    def __init__(self, api_key: str, model: str | None = None, client: Any = None):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
            model: Model name (defaults to gpt-4o).
            client: Pre-built async client (tests inject a mock here).
        """
        import openai

        self._openai = openai
        self.client = client or openai.AsyncOpenAI(api_key=api_key)
        self.model = model or DEFAULT_MODEL

    async def extract_events(self, page_text: str, instruction: str) -> dict[str, Any]:
        """Extract events from page text using GPT."""
        prompt = build_page_prompt(instruction, page_text)
        openai = self._openai

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=8192,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError as e:
            # OpenAI reports an empty balance as a 429 with this code
            if getattr(e, "code", None) == "insufficient_quota":
                raise QuotaExhausted(f"OpenAI quota exhausted: {e}") from e
            raise RateLimited(f"OpenAI rate limit: {e}") from e
        except openai.APIError as e:
            raise TransientSourceError(f"OpenAI API error: {e}") from e

        raw_response = response.choices[0].message.content or ""
        logger.debug(f"Raw AI response: {raw_response[:500]}...")
        return parse_json_response(raw_response)

    async def aclose(self) -> None:
        await self.client.close()
