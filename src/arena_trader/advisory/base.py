"""Advisory client base: prompt construction, response parsing, default HOLD."""

from __future__ import annotations

import asyncio
import json
import math
from abc import ABC, abstractmethod

import structlog

from arena_trader.advisory.strategies import STRATEGIES
from arena_trader.models.decision import AdvisoryContext, Decision
from arena_trader.risk_validator import RiskLimits

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an expert cryptocurrency trading AI.
Analyze market data and make disciplined trading decisions on leveraged perpetual futures.
Default to HOLD if uncertain.
Respond ONLY with a single valid JSON object."""

OPEN_ALIASES = ("OPEN", "OPEN_POSITION", "BUY")
CLOSE_ALIASES = ("CLOSE", "CLOSE_POSITION", "SELL")


def build_prompt(
    context: AdvisoryContext,
    assets: list[str],
    limits: RiskLimits,
    leverage: int,
) -> str:
    strategies = "\n".join(f"- {name}: {desc}" for name, desc in STRATEGIES.items())
    markets = "\n".join(
        f"{q.symbol}: ${q.current_price:.2f} (24h: {q.change_24h:+.2f}%, "
        f"high ${q.high_24h:.2f}, low ${q.low_24h:.2f})"
        for q in context.market_data
    )
    if context.open_positions:
        positions = "\n".join(
            f"{p.asset} {p.side}: {p.size:.4f} units @ ${p.entry_price:.2f} "
            f"(now ${p.current_price:.2f}, PnL {p.unrealized_pnl:+.2f} USD)"
            for p in context.open_positions
        )
    else:
        positions = "No open positions"

    return f"""You are {context.agent_name}, an AI trading agent competing against other AIs.

CURRENT STATE:
- Capital: ${context.current_capital:.2f}
- Leverage: {leverage}x
- Open Positions:
{positions}

MARKET DATA:
{markets}

AVAILABLE STRATEGIES:
{strategies}

RISK LIMITS (ENFORCED):
- Max position size: {limits.max_position_size_percent:g}% of capital (margin) per trade
- Minimum margin per trade: ${limits.min_capital_to_trade:g}
- Max loss per trade: {limits.max_loss_per_trade_percent:g}%
- Max {limits.max_trades_per_cycle} trades per cycle
- One position per asset; CLOSE an existing position before reversing it

TASK:
Decide one action:
1. OPEN a new LONG or SHORT position, CLOSE an existing position, or HOLD
2. Asset: {", ".join(assets)} (null if HOLD)
3. Strategy: {", ".join(STRATEGIES)} (null if HOLD)
4. Position size as % of capital: 0-{limits.max_position_size_percent:g} (0 if HOLD or CLOSE)
5. Concise reasoning
6. Confidence: 0.0-1.0

Respond ONLY with valid JSON:
{{
  "action": "OPEN" | "CLOSE" | "HOLD",
  "direction": "LONG" | "SHORT" | null,
  "asset": {" | ".join(f'"{a}"' for a in assets)} | null,
  "strategy": "<strategy name>" | null,
  "positionSizePercent": number,
  "reasoning": "your analysis",
  "confidence": number
}}"""


def _extract_json(text: str) -> dict | None:
    """Try to extract a JSON object from text."""
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError:
        pass

    try:
        start = text.index("{")
        end = text.rindex("}") + 1
        data = json.loads(text[start:end])
        return data if isinstance(data, dict) else None
    except (ValueError, json.JSONDecodeError):
        pass

    return None


def _clamp(value, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(max(number, low), high)


def hold(reason: str) -> Decision:
    return Decision(action="HOLD", reasoning=reason, confidence=0.0)


def parse_decision(text: str, assets: list[str]) -> Decision:
    """Parse a raw advisory response. Anything unusable becomes HOLD."""
    if not text:
        return hold("Empty response")
    data = _extract_json(text)
    if data is None:
        logger.warning("advisory_parse_error", raw_text=text[:200])
        return hold("Invalid JSON response")

    raw_action = str(data.get("action") or "HOLD").upper()
    raw_direction = str(data.get("direction") or "").upper()
    direction = raw_direction if raw_direction in ("LONG", "SHORT") else None
    if raw_action in OPEN_ALIASES:
        action = "OPEN"
        if direction is None and raw_action == "BUY":
            direction = "LONG"
    elif raw_action in CLOSE_ALIASES:
        action = "CLOSE"
    else:
        action = "HOLD"

    asset = str(data.get("asset") or "").upper() or None
    if asset not in assets:
        asset = None
    strategy = data.get("strategy")
    if strategy not in STRATEGIES:
        strategy = None

    size = data.get("positionSizePercent", data.get("position_size_percent", 0))
    return Decision(
        action=action,
        direction=direction,
        asset=asset,
        strategy=strategy,
        position_size_percent=_clamp(size, 0.0, 100.0, 0.0),
        reasoning=str(data.get("reasoning") or "No reasoning provided"),
        confidence=_clamp(data.get("confidence", 0.5), 0.0, 1.0, 0.5),
    )


class AdvisoryClient(ABC):
    """One external decision service. `analyze_market` never raises."""

    provider: str = ""

    def __init__(
        self,
        model: str,
        assets: list[str],
        limits: RiskLimits,
        leverage: int = 3,
        timeout: float = 60.0,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> None:
        self.model = model
        self.assets = assets
        self.limits = limits
        self.leverage = leverage
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def analyze_market(self, context: AdvisoryContext) -> Decision:
        prompt = build_prompt(context, self.assets, self.limits, self.leverage)
        try:
            text = await asyncio.wait_for(self._complete(SYSTEM_PROMPT, prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("advisory_timeout", provider=self.provider, timeout=self.timeout)
            return hold("Advisory request timed out")
        except Exception as e:
            logger.warning("advisory_error", provider=self.provider, model=self.model, error=str(e))
            return hold(f"Error calling {self.provider} API")

        logger.info("advisory_call", provider=self.provider, model=self.model, chars=len(text or ""))
        return parse_decision(text, self.assets)

    @abstractmethod
    async def _complete(self, system: str, prompt: str) -> str:
        """Return the raw text of one completion."""
