"""First-run seeding of the competing agents."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from arena_trader.db.repository import (
        ActivityEventRepository,
        AgentRepository,
        PerformanceSnapshotRepository,
    )

logger = structlog.get_logger()

AGENT_SEEDS: list[dict] = [
    {
        "name": "DeepSeek-R1",
        "model": "DeepSeek R1",
        "description": "Analytical reasoner with momentum-based trading strategy",
        "api_key_ref": "AGENT_DEEPSEEK_API_KEY",
        "api_secret_ref": "AGENT_DEEPSEEK_API_SECRET",
        "strategy": "momentum",
    },
    {
        "name": "GPT-5",
        "model": "GPT-5 Turbo",
        "description": "Advanced swing trader with market sentiment analysis",
        "api_key_ref": "AGENT_GPT5_API_KEY",
        "api_secret_ref": "AGENT_GPT5_API_SECRET",
        "strategy": "swing",
    },
    {
        "name": "Claude-3.5",
        "model": "Claude 3.5 Sonnet",
        "description": "Conservative trader focused on capital preservation",
        "api_key_ref": "AGENT_CLAUDE35_API_KEY",
        "api_secret_ref": "AGENT_CLAUDE35_API_SECRET",
        "strategy": "conservative",
    },
    {
        "name": "Grok-4",
        "model": "Grok 4",
        "description": "Aggressive high-risk trader seeking maximum gains",
        "api_key_ref": "AGENT_GROK4_API_KEY",
        "api_secret_ref": "AGENT_GROK4_API_SECRET",
        "strategy": "aggressive",
    },
    {
        "name": "Gemini-2",
        "model": "Gemini 2.0",
        "description": "Mean reversion specialist leveraging multi-modal data",
        "api_key_ref": "AGENT_GEMINI2_API_KEY",
        "api_secret_ref": "AGENT_GEMINI2_API_SECRET",
        "strategy": "mean_reversion",
    },
]


async def seed_agents(
    agent_repo: AgentRepository,
    snapshot_repo: PerformanceSnapshotRepository,
    event_repo: ActivityEventRepository,
    initial_capital: float,
) -> int:
    """Create the agents on an empty database. Returns how many were created."""
    if await agent_repo.count() > 0:
        logger.info("seed_skipped", reason="agents_exist")
        return 0

    for seed in AGENT_SEEDS:
        agent_id = await agent_repo.create(
            {
                "name": seed["name"],
                "model": seed["model"],
                "description": seed["description"],
                "api_key_ref": seed["api_key_ref"],
                "api_secret_ref": seed["api_secret_ref"],
                "initial_capital": initial_capital,
                "current_capital": initial_capital,
                "total_pnl": 0,
                "total_pnl_percentage": 0,
                "total_trades": 0,
                "is_active": True,
            }
        )
        await snapshot_repo.save(
            {
                "agent_id": agent_id,
                "account_value": initial_capital,
                "total_pnl": 0,
                "total_pnl_percentage": 0,
                "open_positions": 0,
            }
        )
        await event_repo.record(
            agent_id,
            "AGENT_INITIALIZED",
            f"{seed['name']} initialized with {seed['strategy']} strategy "
            f"and ${initial_capital:.2f} capital",
            strategy=seed["strategy"],
        )
        logger.info("agent_seeded", agent=seed["name"], strategy=seed["strategy"])

    return len(AGENT_SEEDS)
