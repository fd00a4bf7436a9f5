"""Dispatch an approved decision to exactly one backend and normalize the result."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from agentic_trader.models.decision import (
    Action,
    CloseDecision,
    Decision,
    DepositDecision,
    OpenDecision,
    TransferDecision,
)
from agentic_trader.models.position import Balances, Position
from agentic_trader.models.trade import ExecutionResult
from agentic_trader.venues.base import AGENT_ACCOUNT, TREASURY_ACCOUNT

if TYPE_CHECKING:
    from agentic_trader.config import Settings
    from agentic_trader.models.position import CloseResult
    from agentic_trader.models.state import AgentState
    from agentic_trader.venues.base import PerpVenue, SpotLedger

logger = structlog.get_logger()


class ExecutionContext(BaseModel):
    balances: Balances = Balances()
    position: Position | None = None
    price: float = 0.0


def floor_cents(amount: float) -> float:
    """Round down to 0.01 so clamped amounts never exceed their bound."""
    if amount <= 0:
        return 0.0
    return math.floor(amount * 100) / 100


class ExecutionRouter:
    """
    | Action                          | Backend               | Clamp                                      |
    |---------------------------------|-----------------------|--------------------------------------------|
    | ALLOCATE / WITHDRAW / REBALANCE | SpotLedger.transfer   | min(req, bal*MAX_TRADE_PCT, bal - reserve) |
    | DEPOSIT_TO_DRIFT                | PerpVenue.deposit     | min(req, agent*MAX_DEPOSIT_BALANCE_PCT)    |
    | OPEN_LONG / OPEN_SHORT          | PerpVenue.open        | size <= MAX_PERP_SIZE_USD, lev <= MAX      |
    | CLOSE_LONG / CLOSE_SHORT        | PerpVenue.close       | -                                          |
    | HOLD                            | none                  | -                                          |
    Anything clamped below the minimum becomes HOLD. Backend exceptions become FAILED.
    """

    def __init__(
        self,
        settings: Settings,
        ledger: SpotLedger,
        venue: PerpVenue | None = None,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.venue = venue

    async def execute(
        self,
        decision: Decision,
        ctx: ExecutionContext,
        state: AgentState,
        now: datetime | None = None,
    ) -> ExecutionResult:
        now = now or datetime.now(timezone.utc)

        if isinstance(decision, TransferDecision):
            return await self._execute_transfer(decision, ctx)
        if isinstance(decision, DepositDecision):
            return await self._execute_deposit(decision, ctx)
        if isinstance(decision, OpenDecision):
            return await self._execute_open(decision, ctx, state, now)
        if isinstance(decision, CloseDecision):
            return await self._execute_close(decision, ctx, state, now)
        return ExecutionResult(action=Action.HOLD.value)

    # --- Treasury transfers ---

    def clamp_transfer(self, requested: float, balance: float) -> float:
        amount = min(
            requested,
            balance * self.settings.MAX_TRADE_PCT,
            balance - self.settings.MIN_RESERVE_USDC,
        )
        return floor_cents(amount)

    async def _execute_transfer(
        self, decision: TransferDecision, ctx: ExecutionContext
    ) -> ExecutionResult:
        agent = ctx.balances.agent
        treasury = ctx.balances.treasury

        if decision.action == Action.ALLOCATE_TO_TREASURY:
            source, destination, balance = AGENT_ACCOUNT, TREASURY_ACCOUNT, agent
            requested = decision.amount
        elif decision.action == Action.WITHDRAW_FROM_TREASURY:
            source, destination, balance = TREASURY_ACCOUNT, AGENT_ACCOUNT, treasury
            requested = decision.amount
        else:
            diff = agent - (agent + treasury) / 2
            if diff > 0:
                source, destination, balance = AGENT_ACCOUNT, TREASURY_ACCOUNT, agent
            else:
                source, destination, balance = TREASURY_ACCOUNT, AGENT_ACCOUNT, treasury
            requested = min(decision.amount, abs(diff)) if decision.amount > 0 else abs(diff)

        amount = self.clamp_transfer(requested, balance)
        if amount < self.settings.MIN_TRADE_USDC:
            logger.info(
                "transfer_below_minimum",
                action=decision.action,
                requested=requested,
                clamped=amount,
                balance=balance,
            )
            return ExecutionResult(action=Action.HOLD.value)

        try:
            tx_ref = await self.ledger.transfer(source, destination, amount)
        except Exception as e:
            logger.warning("transfer_failed", action=decision.action, amount=amount, error=str(e))
            return _failed(amount, e)

        logger.info(
            "transfer_executed",
            action=decision.action,
            source=source,
            destination=destination,
            amount=amount,
            tx_ref=tx_ref,
        )
        return ExecutionResult(action=decision.action, amount=amount, tx_ref=tx_ref)

    # --- Collateral deposit ---

    async def _execute_deposit(
        self, decision: DepositDecision, ctx: ExecutionContext
    ) -> ExecutionResult:
        if self.venue is None:
            logger.info("deposit_skipped_no_venue")
            return ExecutionResult(action=Action.HOLD.value)

        agent = ctx.balances.agent
        amount = floor_cents(
            min(
                decision.amount,
                agent * self.settings.MAX_DEPOSIT_BALANCE_PCT,
                agent - self.settings.MIN_RESERVE_USDC,
            )
        )
        if amount < self.settings.MIN_TRADE_USDC:
            logger.info("deposit_below_minimum", requested=decision.amount, clamped=amount)
            return ExecutionResult(action=Action.HOLD.value)

        try:
            tx_ref = await self.venue.deposit(amount)
        except Exception as e:
            logger.warning("deposit_failed", amount=amount, error=str(e))
            return _failed(amount, e)

        logger.info("deposit_executed", amount=amount, tx_ref=tx_ref)
        return ExecutionResult(action=decision.action, amount=amount, tx_ref=tx_ref)

    # --- Perp open/close ---

    async def _execute_open(
        self,
        decision: OpenDecision,
        ctx: ExecutionContext,
        state: AgentState,
        now: datetime,
    ) -> ExecutionResult:
        if self.venue is None:
            logger.info("open_skipped_no_venue", action=decision.action)
            return ExecutionResult(action=Action.HOLD.value)

        size = floor_cents(min(decision.size, self.settings.MAX_PERP_SIZE_USD))
        leverage = max(1.0, min(decision.leverage, self.settings.MAX_LEVERAGE))
        if size < self.settings.MIN_PERP_SIZE_USD:
            logger.info("open_below_minimum", action=decision.action, size=size)
            return ExecutionResult(action=Action.HOLD.value)

        direction = decision.direction
        position = ctx.position
        if position is not None and position.direction == direction:
            logger.info("open_skipped_stacking", direction=direction)
            return ExecutionResult(action=Action.HOLD.value)

        realized_pnl: float | None = None
        strategy_pnl: float | None = None
        if position is not None:
            # Reverse: close the opposite position first, best-effort
            try:
                closed = await self.venue.close()
                if closed is not None:
                    realized_pnl, strategy_pnl = self._reconcile_close(
                        closed, state, ctx.price, now
                    )
            except Exception as e:
                logger.warning(
                    "reversal_close_failed", closing=position.direction, error=str(e)
                )

        try:
            opened = await self.venue.open(direction, size, leverage)
        except Exception as e:
            logger.warning("open_failed", direction=direction, size=size, error=str(e))
            result = _failed(size, e)
            result.realized_pnl = realized_pnl
            result.strategy_pnl = strategy_pnl
            return result

        reference_price = opened.price or ctx.price
        state.record_open(direction, reference_price, abs(opened.base_amount), now)
        logger.info(
            "position_opened",
            direction=direction,
            size_usd=size,
            leverage=leverage,
            reference_price=reference_price,
            base_amount=opened.base_amount,
            tx_ref=opened.tx_ref,
        )
        return ExecutionResult(
            action=decision.action,
            amount=size,
            tx_ref=opened.tx_ref,
            realized_pnl=realized_pnl,
            strategy_pnl=strategy_pnl,
        )

    async def _execute_close(
        self,
        decision: CloseDecision,
        ctx: ExecutionContext,
        state: AgentState,
        now: datetime,
    ) -> ExecutionResult:
        position = ctx.position
        if self.venue is None or position is None:
            logger.info("close_skipped_no_position", action=decision.action)
            return ExecutionResult(action=Action.HOLD.value)
        if position.direction != decision.direction:
            logger.info(
                "close_skipped_direction_mismatch",
                action=decision.action,
                position=position.direction,
            )
            return ExecutionResult(action=Action.HOLD.value)

        amount = floor_cents(position.notional)
        try:
            closed = await self.venue.close()
        except Exception as e:
            logger.warning("close_failed", direction=position.direction, error=str(e))
            return _failed(amount, e)

        if closed is None:
            logger.info("close_nothing_open", action=decision.action)
            return ExecutionResult(action=Action.HOLD.value)

        realized_pnl, strategy_pnl = self._reconcile_close(closed, state, ctx.price, now)
        return ExecutionResult(
            action=decision.action,
            amount=amount,
            tx_ref=closed.tx_ref,
            realized_pnl=realized_pnl,
            strategy_pnl=strategy_pnl,
        )

    def _reconcile_close(
        self,
        closed: CloseResult,
        state: AgentState,
        market_price: float,
        now: datetime,
    ) -> tuple[float, float | None]:
        """Accumulate execution P&L and reference-price (spread-free) P&L."""
        ref = state.open_position
        close_price = closed.price or market_price
        strategy_pnl: float | None = None
        if ref is not None and close_price > 0:
            sign = 1.0 if ref.direction == "LONG" else -1.0
            strategy_pnl = (close_price - ref.reference_price) * ref.size * sign

        state.record_close(closed.pnl, strategy_pnl, now)
        logger.info(
            "position_closed",
            realized_pnl=closed.pnl,
            strategy_pnl=strategy_pnl,
            spread_cost=(strategy_pnl - closed.pnl) if strategy_pnl is not None else None,
            cumulative_realized=state.realized_pnl,
            cumulative_strategy=state.strategy_pnl,
            tx_ref=closed.tx_ref,
        )
        return closed.pnl, strategy_pnl


def _failed(amount: float, error: Exception) -> ExecutionResult:
    return ExecutionResult(action=Action.FAILED.value, amount=amount, tx_ref=None, error=str(error))
