"""Per-agent exchange client registry."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Callable

import structlog

from arena_trader.exchange.asterdex_client import AsterDexClient

if TYPE_CHECKING:
    from arena_trader.config import Settings
    from arena_trader.models.records import AgentRecord

logger = structlog.get_logger()


class ExchangeClientRegistry:
    """Lazily builds one AsterDexClient per agent from its credential slot names.

    The agent row stores the *names* of the environment variables holding the
    key and secret. An agent whose slots are unset or empty gets no client.
    """

    def __init__(
        self,
        settings: Settings,
        env_lookup: Callable[[str], str | None] = os.environ.get,
    ) -> None:
        self.settings = settings
        self._env_lookup = env_lookup
        self._clients: dict[str, AsterDexClient] = {}

    def get(self, agent: AgentRecord) -> AsterDexClient | None:
        if agent.id in self._clients:
            return self._clients[agent.id]

        if not agent.api_key_ref or not agent.api_secret_ref:
            return None
        api_key = self._env_lookup(agent.api_key_ref)
        api_secret = self._env_lookup(agent.api_secret_ref)
        if not api_key or not api_secret:
            logger.debug("exchange_credentials_missing", agent=agent.name)
            return None

        client = AsterDexClient(
            api_key=api_key,
            api_secret=api_secret,
            base_url=self.settings.EXCHANGE_BASE_URL,
            recv_window_ms=self.settings.EXCHANGE_RECV_WINDOW_MS,
            timeout=self.settings.EXCHANGE_TIMEOUT_SECONDS,
        )
        self._clients[agent.id] = client
        logger.info("exchange_client_created", agent=agent.name)
        return client

    async def invalidate(self, agent_id: str) -> None:
        """Drop a cached client so the next get() re-reads credentials."""
        client = self._clients.pop(agent_id, None)
        if client is not None:
            await client.close()

    async def clear(self) -> None:
        for agent_id in list(self._clients):
            await self.invalidate(agent_id)
