"""AgentState: the single persisted mutable root."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from agentic_trader.models.market import PriceReading
from agentic_trader.models.position import Balances
from agentic_trader.models.trade import TradeRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OpenPositionRef(BaseModel):
    """Reference-price bookkeeping for the open position (strategy P&L)."""

    direction: str
    reference_price: float
    size: float
    opened_at: datetime = Field(default_factory=_utcnow)


class BalanceSnapshot(BaseModel):
    time: datetime = Field(default_factory=_utcnow)
    agent: float = 0.0
    treasury: float = 0.0
    perp_collateral: float = 0.0
    unrealized_pnl: float = 0.0
    total: float = 0.0


class AgentState(BaseModel):
    prices: list[PriceReading] = []
    trades: list[TradeRecord] = []
    balance_history: list[BalanceSnapshot] = []
    cycle: int = 0
    started_at: datetime = Field(default_factory=_utcnow)
    total_transactions: int = 0
    total_volume_usdc: float = 0.0
    initial_total_balance: float | None = None
    realized_pnl: float = 0.0  # execution P&L, spread included
    strategy_pnl: float = 0.0  # reference-price P&L, spread-free
    closed_positions: int = 0
    open_position: OpenPositionRef | None = None
    last_position_open_at: datetime | None = None
    last_position_close_at: datetime | None = None

    def record_price(self, price: float, limit: int, time: datetime | None = None) -> None:
        self.prices.append(PriceReading(time=time or _utcnow(), price=price))
        if len(self.prices) > limit:
            self.prices = self.prices[-limit:]

    def record_trade(self, trade: TradeRecord, limit: int) -> None:
        self.trades.append(trade)
        if len(self.trades) > limit:
            self.trades = self.trades[-limit:]
        if trade.tx_ref:
            self.total_transactions += 1
            self.total_volume_usdc += trade.amount

    def record_balances(self, balances: Balances, limit: int, time: datetime | None = None) -> None:
        total = balances.total
        if self.initial_total_balance is None:
            self.initial_total_balance = total
        self.balance_history.append(
            BalanceSnapshot(
                time=time or _utcnow(),
                agent=balances.agent,
                treasury=balances.treasury,
                perp_collateral=balances.perp_collateral,
                unrealized_pnl=balances.unrealized_pnl,
                total=total,
            )
        )
        if len(self.balance_history) > limit:
            self.balance_history = self.balance_history[-limit:]

    def record_open(
        self, direction: str, reference_price: float, size: float, now: datetime
    ) -> None:
        self.open_position = OpenPositionRef(
            direction=direction, reference_price=reference_price, size=size, opened_at=now
        )
        self.last_position_open_at = now

    def record_close(
        self, realized_pnl: float, strategy_pnl: float | None, now: datetime
    ) -> None:
        self.realized_pnl += realized_pnl
        if strategy_pnl is not None:
            self.strategy_pnl += strategy_pnl
        self.closed_positions += 1
        self.open_position = None
        self.last_position_close_at = now
