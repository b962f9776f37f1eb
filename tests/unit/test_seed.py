"""Unit tests for first-run agent seeding."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from arena_trader.seed import AGENT_SEEDS, seed_agents


@pytest.fixture
def repos():
    agent_repo = AsyncMock()
    agent_repo.count.return_value = 0
    agent_repo.create.side_effect = [f"agent-{i}" for i in range(len(AGENT_SEEDS))]
    return agent_repo, AsyncMock(), AsyncMock()


async def test_seeds_empty_database(repos):
    agent_repo, snapshot_repo, event_repo = repos
    created = await seed_agents(agent_repo, snapshot_repo, event_repo, initial_capital=20.0)

    assert created == 5
    first = agent_repo.create.await_args_list[0].args[0]
    assert first["name"] == "DeepSeek-R1"
    assert first["api_key_ref"] == "AGENT_DEEPSEEK_API_KEY"
    assert first["current_capital"] == 20.0

    snapshot = snapshot_repo.save.await_args_list[0].args[0]
    assert snapshot == {
        "agent_id": "agent-0",
        "account_value": 20.0,
        "total_pnl": 0,
        "total_pnl_percentage": 0,
        "open_positions": 0,
    }
    event = event_repo.record.await_args_list[0]
    assert event.args[1] == "AGENT_INITIALIZED"
    assert event.kwargs["strategy"] == "momentum"
    assert event_repo.record.await_count == 5


async def test_noop_when_agents_exist(repos):
    agent_repo, snapshot_repo, event_repo = repos
    agent_repo.count.return_value = 5
    assert await seed_agents(agent_repo, snapshot_repo, event_repo, initial_capital=20.0) == 0
    agent_repo.create.assert_not_awaited()
    snapshot_repo.save.assert_not_awaited()


def test_seed_names_unique():
    names = [s["name"] for s in AGENT_SEEDS]
    assert len(names) == len(set(names))
