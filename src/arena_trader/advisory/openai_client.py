"""OpenAI chat-completions advisor (also serves OpenAI-compatible endpoints)."""

from __future__ import annotations

import openai
import structlog
from openai import AsyncOpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from arena_trader.advisory.base import AdvisoryClient

logger = structlog.get_logger()


class OpenAIAdvisor(AdvisoryClient):
    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        json_mode: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(model=model, **kwargs)
        self.base_url = base_url
        self.json_mode = json_mode
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    @retry(
        retry=retry_if_exception_type((openai.APIConnectionError, openai.RateLimitError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _complete(self, system: str, prompt: str) -> str:
        kwargs = {}
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            **kwargs,
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError(f"No response content from {self.model}")
        return content
