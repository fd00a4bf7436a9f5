"""ExecutionResult, TradeRecord Pydantic models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from agentic_trader.models.position import Position


class ExecutionResult(BaseModel):
    action: str = "HOLD"
    amount: float = 0.0
    tx_ref: str | None = None
    error: str | None = None
    realized_pnl: float | None = None
    strategy_pnl: float | None = None

    @property
    def failed(self) -> bool:
        return self.action == "FAILED"


class TradeRecord(BaseModel):
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cycle: int = 0
    action: str = "HOLD"  # executed action, may differ from requested_action
    requested_action: str = "HOLD"
    amount: float = 0.0
    tx_ref: str | None = None
    confidence: float = 0.0
    reason: str = ""
    outlook: str = "neutral"
    source: str = "rules"  # advisor, rules
    guard_rule: str | None = None
    error: str | None = None
    price: float = 0.0
    agent_balance: float = 0.0
    treasury_balance: float = 0.0
    perp_collateral: float = 0.0
    position: Position | None = None
    realized_pnl: float | None = None
    strategy_pnl: float | None = None
