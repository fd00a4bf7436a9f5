"""Shared fixtures for agentic-trader tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from agentic_trader.config import Settings
from agentic_trader.models.context import DecisionContext
from agentic_trader.models.market import PriceQuote, PriceReading, TrendSignal
from agentic_trader.models.position import Balances, Position
from agentic_trader.models.state import AgentState

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


# --- Helpers ---


def _make_readings(prices: list[float], start: datetime | None = None) -> list[PriceReading]:
    start = start or NOW - timedelta(seconds=30 * len(prices))
    return [
        PriceReading(time=start + timedelta(seconds=30 * i), price=p)
        for i, p in enumerate(prices)
    ]


def _make_position(
    direction: str = "LONG",
    size: float = 0.1,
    price: float = 100.0,
    unrealized_pnl: float = 0.0,
    opened_at: datetime | None = None,
) -> Position:
    sign = 1.0 if direction == "LONG" else -1.0
    return Position(
        direction=direction,
        base_amount=sign * size,
        quote_amount=size * price,
        unrealized_pnl=unrealized_pnl,
        opened_at=opened_at,
    )


def _make_context(
    agent: float = 10.0,
    treasury: float = 10.0,
    free_collateral: float = 0.0,
    change_24h: float = 0.0,
    momentum: float = 0.0,
    position: Position | None = None,
    venue_available: bool = False,
    price: float = 100.0,
) -> DecisionContext:
    return DecisionContext(
        balances=Balances(
            agent=agent,
            treasury=treasury,
            perp_collateral=free_collateral,
            free_collateral=free_collateral,
            unrealized_pnl=position.unrealized_pnl if position else 0.0,
        ),
        position=position,
        quote=PriceQuote(price=price, change_24h=change_24h),
        trend=TrendSignal(momentum=momentum),
        cycle=1,
        max_cycles=200,
        venue_available=venue_available,
    )


# --- Fixtures ---


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ANTHROPIC_API_KEY="",
        TRADE_INTERVAL_SECONDS=0,
        MAX_CYCLES=5,
        FETCH_TIMEOUT_SECONDS=1.0,
        ADVISOR_TIMEOUT_SECONDS=0.2,
        MIN_TRADE_USDC=0.5,
        MAX_TRADE_PCT=0.25,
        MIN_RESERVE_USDC=0.5,
        MIN_PERP_SIZE_USD=1.0,
        MAX_PERP_SIZE_USD=50.0,
        DEFAULT_LEVERAGE=2.0,
        MAX_LEVERAGE=5.0,
        MIN_HOLD_SECONDS=1800,
        COOLDOWN_SECONDS=900,
        SPREAD_TOLERANCE_PCT=0.005,
        STATE_FILE=str(tmp_path / "agent-state.json"),
        DASHBOARD_FILE=str(tmp_path / "data.json"),
        PAPER_CONFIRM_INTERVAL_SECONDS=0.01,
        PAPER_CONFIRM_TIMEOUT_SECONDS=1.0,
    )


@pytest.fixture
def state():
    return AgentState(started_at=NOW - timedelta(hours=1))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_readings():
    return _make_readings


@pytest.fixture
def make_position():
    return _make_position


@pytest.fixture
def make_context():
    return _make_context
