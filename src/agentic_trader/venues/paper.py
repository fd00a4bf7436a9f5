"""Simulated ledger + perp venue for paper trading."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel

from agentic_trader.models.position import CloseResult, Collateral, OpenResult, Position
from agentic_trader.polling import await_terminal_state
from agentic_trader.venues.base import AGENT_ACCOUNT, TREASURY_ACCOUNT

logger = structlog.get_logger()


class InsufficientFundsError(Exception):
    pass


def _tx_ref(prefix: str) -> str:
    return f"paper-{prefix}-{uuid.uuid4().hex[:12]}"


class PendingTransfer(BaseModel):
    tx_ref: str
    source: str
    destination: str
    amount: float
    confirmations: int = 0


class PaperSpotLedger:
    """
    In-memory stable balances for the agent and treasury accounts.

    A transfer is submitted as pending, gains one confirmation per status
    poll, and settles once `confirmations` is reached. Balances move only on
    settlement; a transfer that never settles is dropped.
    """

    def __init__(
        self,
        balances: dict[str, float] | None = None,
        confirmations: int = 2,
        confirm_interval: float = 0.5,
        confirm_timeout: float = 30.0,
    ) -> None:
        self.balances = dict(balances or {AGENT_ACCOUNT: 0.0, TREASURY_ACCOUNT: 0.0})
        self.confirmations = confirmations
        self.confirm_interval = confirm_interval
        self.confirm_timeout = confirm_timeout
        self.pending: dict[str, PendingTransfer] = {}

    async def get_balance(self, account: str) -> float:
        return self.balances.get(account, 0.0)

    async def transfer(self, source: str, destination: str, amount: float) -> str:
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        self._check_funds(source, amount)

        tx = PendingTransfer(
            tx_ref=_tx_ref("tx"), source=source, destination=destination, amount=amount
        )
        self.pending[tx.tx_ref] = tx
        logger.debug("paper_transfer_submitted", tx_ref=tx.tx_ref, amount=amount)

        await await_terminal_state(
            lambda: self._poll(tx.tx_ref),
            lambda confirmations: confirmations >= self.confirmations,
            timeout=self.confirm_timeout,
            interval=self.confirm_interval,
            on_timeout=lambda: self._cancel(tx.tx_ref),
            label=f"transfer {tx.tx_ref}",
        )

        self.pending.pop(tx.tx_ref, None)
        self._check_funds(source, amount)
        self.balances[source] -= amount
        self.balances[destination] = self.balances.get(destination, 0.0) + amount
        logger.info(
            "paper_transfer_settled",
            tx_ref=tx.tx_ref,
            source=source,
            destination=destination,
            amount=amount,
        )
        return tx.tx_ref

    def debit(self, account: str, amount: float) -> None:
        """Immediate withdrawal, e.g. funding perp collateral."""
        self._check_funds(account, amount)
        self.balances[account] -= amount

    def _check_funds(self, account: str, amount: float) -> None:
        available = self.balances.get(account, 0.0)
        if amount > available:
            raise InsufficientFundsError(
                f"Insufficient {account} balance: {available:.2f} < {amount:.2f}"
            )

    async def _poll(self, tx_ref: str) -> int:
        tx = self.pending[tx_ref]
        tx.confirmations += 1
        return tx.confirmations

    async def _cancel(self, tx_ref: str) -> None:
        self.pending.pop(tx_ref, None)
        logger.warning("paper_transfer_dropped", tx_ref=tx_ref)


class _PaperPosition(BaseModel):
    direction: str
    base_amount: float  # signed
    entry_price: float  # fill price, spread included
    size_usd: float
    leverage: float
    opened_at: datetime


class PaperPerpVenue:
    """
    Single-market perp simulator. Marks against `price_source()` (the oracle
    price) and fills at oracle ± `spread_pct`, so execution P&L carries the
    spread while the oracle price reported on open/close stays spread-free.
    """

    def __init__(
        self,
        ledger: PaperSpotLedger,
        price_source: Callable[[], float],
        spread_pct: float = 0.001,
    ) -> None:
        self.ledger = ledger
        self.price_source = price_source
        self.spread_pct = spread_pct
        self.collateral = 0.0
        self.position: _PaperPosition | None = None
        self.closed = False

    def _oracle_price(self) -> float:
        price = self.price_source()
        if price <= 0:
            raise RuntimeError("No oracle price available")
        return price

    def _unrealized(self, oracle: float) -> float:
        if self.position is None:
            return 0.0
        return (oracle - self.position.entry_price) * self.position.base_amount

    async def get_position(self) -> Position | None:
        if self.position is None:
            return None
        p = self.position
        return Position(
            direction=p.direction,
            base_amount=p.base_amount,
            quote_amount=p.size_usd,
            unrealized_pnl=self._unrealized(self._oracle_price()),
            opened_at=p.opened_at,
        )

    async def get_collateral(self) -> Collateral:
        margin = self.position.size_usd / self.position.leverage if self.position else 0.0
        return Collateral(balance=self.collateral, free=max(0.0, self.collateral - margin))

    async def deposit(self, amount: float) -> str:
        self.ledger.debit(AGENT_ACCOUNT, amount)
        self.collateral += amount
        tx_ref = _tx_ref("deposit")
        logger.info("paper_deposit", amount=amount, collateral=self.collateral, tx_ref=tx_ref)
        return tx_ref

    async def open(self, direction: str, size_usd: float, leverage: float) -> OpenResult:
        if self.position is not None:
            raise RuntimeError(f"Position already open: {self.position.direction}")
        collateral = await self.get_collateral()
        if size_usd / leverage > collateral.free:
            raise InsufficientFundsError(
                f"Margin {size_usd / leverage:.2f} exceeds free collateral {collateral.free:.2f}"
            )

        oracle = self._oracle_price()
        sign = 1.0 if direction == "LONG" else -1.0
        fill = oracle * (1 + sign * self.spread_pct)
        base_amount = sign * size_usd / fill
        self.position = _PaperPosition(
            direction=direction,
            base_amount=base_amount,
            entry_price=fill,
            size_usd=size_usd,
            leverage=leverage,
            opened_at=datetime.now(timezone.utc),
        )
        tx_ref = _tx_ref("open")
        logger.info(
            "paper_position_opened",
            direction=direction,
            size_usd=size_usd,
            fill=fill,
            oracle=oracle,
            tx_ref=tx_ref,
        )
        return OpenResult(tx_ref=tx_ref, price=oracle, base_amount=base_amount)

    async def close(self) -> CloseResult | None:
        if self.position is None:
            return None
        p = self.position
        oracle = self._oracle_price()
        sign = 1.0 if p.direction == "LONG" else -1.0
        fill = oracle * (1 - sign * self.spread_pct)
        pnl = (fill - p.entry_price) * p.base_amount
        self.collateral = max(0.0, self.collateral + pnl)
        self.position = None
        tx_ref = _tx_ref("close")
        logger.info("paper_position_closed", direction=p.direction, pnl=pnl, fill=fill, tx_ref=tx_ref)
        return CloseResult(tx_ref=tx_ref, pnl=pnl, price=oracle)

    async def shutdown(self) -> None:
        self.closed = True
        logger.info("paper_venue_shutdown")
