"""Anthropic messages-API advisor."""

from __future__ import annotations

import anthropic
from anthropic import AsyncAnthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from arena_trader.advisory.base import AdvisoryClient


class AnthropicAdvisor(AdvisoryClient):
    provider = "anthropic"

    def __init__(self, api_key: str, model: str, **kwargs) -> None:
        super().__init__(model=model, **kwargs)
        self.client = AsyncAnthropic(api_key=api_key, max_retries=0)

    @retry(
        retry=retry_if_exception_type((anthropic.APIConnectionError, anthropic.RateLimitError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _complete(self, system: str, prompt: str) -> str:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")
