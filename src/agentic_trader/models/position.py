"""Position, Collateral, Balances Pydantic models."""

from datetime import datetime

from pydantic import BaseModel


class Position(BaseModel):
    direction: str  # LONG, SHORT
    base_amount: float = 0.0  # signed: > 0 long, < 0 short
    quote_amount: float = 0.0
    unrealized_pnl: float = 0.0
    opened_at: datetime | None = None

    @property
    def size(self) -> float:
        return abs(self.base_amount)

    @property
    def notional(self) -> float:
        return abs(self.quote_amount)


class Collateral(BaseModel):
    balance: float = 0.0
    free: float = 0.0


class OpenResult(BaseModel):
    tx_ref: str
    price: float  # reference (oracle) price at open
    base_amount: float


class CloseResult(BaseModel):
    tx_ref: str
    pnl: float = 0.0  # realized, includes spread
    price: float | None = None  # reference (oracle) price at close


class Balances(BaseModel):
    agent: float = 0.0
    treasury: float = 0.0
    perp_collateral: float = 0.0
    free_collateral: float = 0.0
    unrealized_pnl: float = 0.0

    @property
    def stable_total(self) -> float:
        return self.agent + self.treasury

    @property
    def total(self) -> float:
        return self.agent + self.treasury + self.perp_collateral + self.unrealized_pnl
