"""DB repositories: AgentRepo, OrderRepo, PositionRepo, SnapshotRepo, ActivityRepo."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_trader.db.models import (
    EVENT_TYPES,
    ActivityEventORM,
    AgentORM,
    OrderORM,
    PerformanceSnapshotORM,
    PositionORM,
)
from arena_trader.models.records import AgentRecord, OrderRecord, PositionRecord, SnapshotRecord

logger = structlog.get_logger()


def _orm_to_agent_record(orm: AgentORM) -> AgentRecord:
    return AgentRecord(
        id=orm.id,
        name=orm.name,
        model=orm.model,
        api_key_ref=orm.api_key_ref,
        api_secret_ref=orm.api_secret_ref,
        initial_capital=orm.initial_capital,
        current_capital=orm.current_capital,
        total_pnl=orm.total_pnl or 0.0,
        total_pnl_percentage=orm.total_pnl_percentage or 0.0,
        total_trades=orm.total_trades or 0,
        description=orm.description or "",
        is_active=orm.is_active,
    )


def _orm_to_order_record(orm: OrderORM) -> OrderRecord:
    return OrderRecord(
        id=orm.id,
        agent_id=orm.agent_id,
        symbol=orm.symbol,
        side=orm.side,
        type=orm.type or "MARKET",
        quantity=orm.quantity,
        status=orm.status,
        filled_quantity=orm.filled_quantity or 0.0,
        avg_filled_price=orm.avg_filled_price,
        exchange_order_id=orm.exchange_order_id,
        action=orm.action,
        direction=orm.direction,
        strategy=orm.strategy,
        reasoning=orm.reasoning,
        confidence=orm.confidence,
        error_message=orm.error_message,
        created_at=orm.created_at,
    )


def _orm_to_position_record(orm: PositionORM) -> PositionRecord:
    return PositionRecord(
        id=orm.id,
        agent_id=orm.agent_id,
        asset=orm.asset,
        side=orm.side,
        size=orm.size,
        entry_price=orm.entry_price,
        current_price=orm.current_price,
        leverage=orm.leverage or 1.0,
        unrealized_pnl=orm.unrealized_pnl or 0.0,
        unrealized_pnl_percentage=orm.unrealized_pnl_percentage or 0.0,
        strategy=orm.strategy,
        reasoning=orm.reasoning,
        confidence=orm.confidence,
        open_order_ref=orm.open_order_ref,
        opened_at=orm.opened_at,
    )


class AgentRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create(self, agent: dict) -> str:
        """Create an agent row. Returns its id."""
        async with self.session_factory() as session:
            orm = AgentORM(**agent)
            session.add(orm)
            await session.flush()
            agent_id = orm.id
            await session.commit()
            logger.info("agent_created", agent_id=agent_id, name=agent.get("name"))
            return agent_id

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(AgentORM))
            return result.scalar_one()

    async def get(self, agent_id: str) -> AgentRecord | None:
        async with self.session_factory() as session:
            orm = await session.get(AgentORM, agent_id)
            return _orm_to_agent_record(orm) if orm else None

    async def get_active(self) -> list[AgentRecord]:
        """Active agents ordered by name (stable per-pass iteration order)."""
        async with self.session_factory() as session:
            stmt = select(AgentORM).where(AgentORM.is_active.is_(True)).order_by(AgentORM.name)
            result = await session.execute(stmt)
            return [_orm_to_agent_record(a) for a in result.scalars().all()]

    async def update_capital(
        self,
        agent_id: str,
        current_capital: float,
        total_pnl: float,
        total_pnl_percentage: float,
    ) -> None:
        async with self.session_factory() as session:
            orm = await session.get(AgentORM, agent_id)
            if orm is None:
                raise ValueError(f"Agent not found: {agent_id}")
            orm.current_capital = current_capital
            orm.total_pnl = total_pnl
            orm.total_pnl_percentage = total_pnl_percentage
            await session.commit()

    async def increment_trades(self, agent_id: str) -> None:
        async with self.session_factory() as session:
            orm = await session.get(AgentORM, agent_id)
            if orm is None:
                raise ValueError(f"Agent not found: {agent_id}")
            orm.total_trades = (orm.total_trades or 0) + 1
            await session.commit()


class OrderRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create(self, order: dict) -> str:
        """Insert a PENDING order. Returns order id."""
        async with self.session_factory() as session:
            orm = OrderORM(**order)
            session.add(orm)
            await session.flush()
            order_id = orm.id
            await session.commit()
            logger.info("order_created", order_id=order_id, symbol=order.get("symbol"))
            return order_id

    async def update(self, order_id: str, data: dict) -> None:
        """Update order fields by id."""
        async with self.session_factory() as session:
            stmt = select(OrderORM).where(OrderORM.id == order_id)
            result = await session.execute(stmt)
            order = result.scalar_one_or_none()
            if order is None:
                raise ValueError(f"Order not found: {order_id}")
            for key, value in data.items():
                setattr(order, key, value)
            await session.flush()
            await session.commit()
            logger.info("order_updated", order_id=order_id, status=data.get("status"))

    async def count_since(self, agent_id: str, since: datetime) -> int:
        """Number of orders an agent created at or after `since`."""
        async with self.session_factory() as session:
            stmt = (
                select(func.count())
                .select_from(OrderORM)
                .where(OrderORM.agent_id == agent_id, OrderORM.created_at >= since)
            )
            result = await session.execute(stmt)
            return result.scalar_one()

    async def get_latest(self, agent_id: str, symbol: str, side: str) -> OrderRecord | None:
        """Most recent order for agent/symbol/side, any status."""
        async with self.session_factory() as session:
            stmt = (
                select(OrderORM)
                .where(
                    OrderORM.agent_id == agent_id,
                    OrderORM.symbol == symbol,
                    OrderORM.side == side,
                )
                .order_by(OrderORM.created_at.desc())
                .limit(1)
            )
            result = await session.execute(stmt)
            orm = result.scalar_one_or_none()
            return _orm_to_order_record(orm) if orm else None

    async def get_filled(self, agent_id: str) -> list[OrderRecord]:
        """FILLED orders for an agent, oldest first."""
        async with self.session_factory() as session:
            stmt = (
                select(OrderORM)
                .where(OrderORM.agent_id == agent_id, OrderORM.status == "FILLED")
                .order_by(OrderORM.created_at)
            )
            result = await session.execute(stmt)
            return [_orm_to_order_record(o) for o in result.scalars().all()]


class PositionRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_for_agent(self, agent_id: str) -> list[PositionRecord]:
        async with self.session_factory() as session:
            stmt = select(PositionORM).where(PositionORM.agent_id == agent_id)
            result = await session.execute(stmt)
            return [_orm_to_position_record(p) for p in result.scalars().all()]

    async def create(self, position: dict) -> str:
        async with self.session_factory() as session:
            orm = PositionORM(**position)
            session.add(orm)
            await session.flush()
            position_id = orm.id
            await session.commit()
            logger.info(
                "position_created",
                agent_id=position.get("agent_id"),
                asset=position.get("asset"),
            )
            return position_id

    async def update(self, position_id: str, data: dict) -> None:
        async with self.session_factory() as session:
            orm = await session.get(PositionORM, position_id)
            if orm is None:
                raise ValueError(f"Position not found: {position_id}")
            for key, value in data.items():
                setattr(orm, key, value)
            await session.commit()

    async def delete(self, position_id: str) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(PositionORM).where(PositionORM.id == position_id))
            await session.commit()
            logger.info("position_deleted", position_id=position_id)


class PerformanceSnapshotRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def save(self, snapshot: dict) -> str:
        """Save a performance snapshot. Returns snapshot id."""
        async with self.session_factory() as session:
            orm = PerformanceSnapshotORM(**snapshot)
            session.add(orm)
            await session.flush()
            snapshot_id = orm.id
            await session.commit()
            logger.info(
                "snapshot_saved",
                agent_id=snapshot.get("agent_id"),
                account_value=snapshot.get("account_value"),
            )
            return snapshot_id

    async def get_latest(self, agent_id: str) -> SnapshotRecord | None:
        async with self.session_factory() as session:
            stmt = (
                select(PerformanceSnapshotORM)
                .where(PerformanceSnapshotORM.agent_id == agent_id)
                .order_by(PerformanceSnapshotORM.timestamp.desc())
                .limit(1)
            )
            result = await session.execute(stmt)
            orm = result.scalar_one_or_none()
            if orm is None:
                return None
            return SnapshotRecord(
                id=orm.id,
                agent_id=orm.agent_id,
                account_value=orm.account_value,
                total_pnl=orm.total_pnl,
                total_pnl_percentage=orm.total_pnl_percentage,
                open_positions=orm.open_positions or 0,
                timestamp=orm.timestamp,
            )


class ActivityEventRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        agent_id: str,
        event_type: str,
        message: str,
        asset: str | None = None,
        strategy: str | None = None,
        order_ref: str | None = None,
    ) -> str:
        """Append an activity event. Returns event id."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        async with self.session_factory() as session:
            orm = ActivityEventORM(
                agent_id=agent_id,
                event_type=event_type,
                message=message,
                asset=asset,
                strategy=strategy,
                order_ref=order_ref,
            )
            session.add(orm)
            await session.flush()
            event_id = orm.id
            await session.commit()
            logger.info("activity_recorded", agent_id=agent_id, event_type=event_type)
            return event_id
