"""Agent name -> advisory provider table and client construction."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Callable

import structlog
from pydantic import BaseModel

from arena_trader.advisory.anthropic_client import AnthropicAdvisor
from arena_trader.advisory.openai_client import OpenAIAdvisor
from arena_trader.risk_validator import RiskLimits

if TYPE_CHECKING:
    from arena_trader.advisory.base import AdvisoryClient
    from arena_trader.config import Settings

logger = structlog.get_logger()


class AdvisorSpec(BaseModel):
    provider: str  # openai, anthropic, openai_compatible
    model: str
    api_key_env: str
    base_url: str | None = None
    json_mode: bool = True


ADVISORS: dict[str, AdvisorSpec] = {
    "DeepSeek-R1": AdvisorSpec(
        provider="openai_compatible",
        model="deepseek-chat",
        api_key_env="LLM_DEEPSEEK_API_KEY",
        base_url="https://api.deepseek.com/v1",
    ),
    "GPT-5": AdvisorSpec(
        provider="openai",
        model="gpt-4-turbo",
        api_key_env="LLM_GPT5_API_KEY",
    ),
    "Claude-3.5": AdvisorSpec(
        provider="anthropic",
        model="claude-sonnet-4-5",
        api_key_env="LLM_CLAUDE35_API_KEY",
    ),
    "Grok-4": AdvisorSpec(
        provider="openai_compatible",
        model="grok-3",
        api_key_env="LLM_GROK4_API_KEY",
        base_url="https://api.x.ai/v1",
        json_mode=False,
    ),
    "Gemini-2": AdvisorSpec(
        provider="openai_compatible",
        model="gemini-2.0-flash",
        api_key_env="LLM_GEMINI2_API_KEY",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
    ),
}


def build_advisor(
    agent_name: str,
    settings: Settings,
    env_lookup: Callable[[str], str | None] = os.environ.get,
) -> AdvisoryClient | None:
    """Client for the agent's provider, or None if unmapped or the key is unset."""
    spec = ADVISORS.get(agent_name)
    if spec is None:
        logger.warning("advisor_unmapped", agent=agent_name)
        return None
    api_key = env_lookup(spec.api_key_env)
    if not api_key:
        logger.warning("advisor_key_missing", agent=agent_name, env=spec.api_key_env)
        return None

    common = dict(
        assets=list(settings.SUPPORTED_ASSETS),
        limits=RiskLimits.from_settings(settings),
        leverage=settings.LEVERAGE,
        timeout=settings.ADVISORY_TIMEOUT_SECONDS,
        max_tokens=settings.ADVISORY_MAX_TOKENS,
        temperature=settings.ADVISORY_TEMPERATURE,
    )
    if spec.provider == "anthropic":
        return AnthropicAdvisor(api_key=api_key, model=spec.model, **common)
    advisor = OpenAIAdvisor(
        api_key=api_key,
        model=spec.model,
        base_url=spec.base_url,
        json_mode=spec.json_mode,
        **common,
    )
    if spec.provider == "openai_compatible":
        advisor.provider = agent_name
    return advisor
