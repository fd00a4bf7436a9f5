"""Capability interfaces for the two external ledgers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from agentic_trader.models.position import CloseResult, Collateral, OpenResult, Position

AGENT_ACCOUNT = "agent"
TREASURY_ACCOUNT = "treasury"


@runtime_checkable
class SpotLedger(Protocol):
    """Stable-asset balances across the two owned accounts."""

    async def get_balance(self, account: str) -> float: ...

    async def transfer(self, source: str, destination: str, amount: float) -> str:
        """Move `amount` between accounts; returns only once the transfer is final."""
        ...


@runtime_checkable
class PerpVenue(Protocol):
    """Single-market perpetual futures venue."""

    async def get_position(self) -> Position | None: ...

    async def get_collateral(self) -> Collateral: ...

    async def deposit(self, amount: float) -> str: ...

    async def open(self, direction: str, size_usd: float, leverage: float) -> OpenResult: ...

    async def close(self) -> CloseResult | None: ...

    async def shutdown(self) -> None:
        """Release subscriptions/connections."""
        ...
