"""Cycle orchestrator: state machine + main loop."""

from __future__ import annotations

import asyncio
import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from agentic_trader.execution_router import ExecutionContext
from agentic_trader.models.context import DecisionContext
from agentic_trader.models.decision import (
    CloseDecision,
    DepositDecision,
    OpenDecision,
    TransferDecision,
    hold,
)
from agentic_trader.models.market import PriceQuote, Sentiment
from agentic_trader.models.position import Balances, Collateral, Position
from agentic_trader.models.trade import TradeRecord
from agentic_trader.trend_analyzer import analyze_trend
from agentic_trader.venues.base import AGENT_ACCOUNT, TREASURY_ACCOUNT

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from agentic_trader.advisor import AdvisorGateway
    from agentic_trader.anti_churn import AntiChurnGuard
    from agentic_trader.config import Settings
    from agentic_trader.execution_router import ExecutionRouter
    from agentic_trader.market_data import MarketDataProvider
    from agentic_trader.models.decision import Decision
    from agentic_trader.models.state import AgentState
    from agentic_trader.state_store import DashboardWriter, StateStore
    from agentic_trader.venues.base import SpotLedger
    from agentic_trader.venues.circuit import VenueCircuit

logger = structlog.get_logger()

PROMPT_PRICE_HISTORY = 20
PROMPT_RECENT_TRADES = 10


class CycleState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECIDING = "deciding"
    GUARDING = "guarding"
    EXECUTING = "executing"
    RECORDING = "recording"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class CycleSnapshot(BaseModel):
    """Read-only inputs gathered at the start of a cycle."""

    quote: PriceQuote = PriceQuote()
    sentiment: Sentiment = Sentiment()
    balances: Balances = Balances()
    balances_ok: bool = True
    position: Position | None = None
    venue_read_ok: bool = False
    venue_available: bool = False


class Orchestrator:
    def __init__(
        self,
        settings: Settings,
        state: AgentState,
        market_data: MarketDataProvider,
        ledger: SpotLedger,
        circuit: VenueCircuit,
        gateway: AdvisorGateway,
        guard: AntiChurnGuard,
        router: ExecutionRouter,
        store: StateStore,
        dashboard: DashboardWriter | None = None,
    ) -> None:
        self.settings = settings
        self.state = state
        self.market_data = market_data
        self.ledger = ledger
        self.circuit = circuit
        self.gateway = gateway
        self.guard = guard
        self.router = router
        self.store = store
        self.dashboard = dashboard
        self.cycle_state = CycleState.IDLE
        self.running = False
        self.session_cycles = 0

    def _set_state(self, new_state: CycleState) -> None:
        """Update state with logging."""
        old = self.cycle_state
        self.cycle_state = new_state
        logger.debug("state_transition", old=old.value, new=new_state.value)

    async def run(self) -> None:
        """Run up to MAX_CYCLES cycles this session, then shut down the venue."""
        self.running = True
        logger.info(
            "orchestrator_started",
            max_cycles=self.settings.MAX_CYCLES,
            interval=self.settings.TRADE_INTERVAL_SECONDS,
            resumed_cycle=self.state.cycle,
        )
        try:
            while self.running and self.session_cycles < self.settings.MAX_CYCLES:
                await self.run_cycle()
                if self.running and self.session_cycles < self.settings.MAX_CYCLES:
                    self._set_state(CycleState.SLEEPING)
                    await asyncio.sleep(self.settings.TRADE_INTERVAL_SECONDS)
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Release venue resources; safe to call more than once."""
        if self.cycle_state == CycleState.STOPPED:
            return
        self.running = False
        venue = self.circuit.venue
        if venue is not None:
            try:
                await venue.shutdown()
            except Exception:
                logger.exception("venue_shutdown_failed")
        self._set_state(CycleState.STOPPED)
        logger.info("orchestrator_stopped", session_cycles=self.session_cycles)

    async def run_cycle(self) -> TradeRecord | None:
        """One cycle. Any exception aborts it, persists state and returns None."""
        self.session_cycles += 1
        self.state.cycle += 1
        try:
            return await self._run_cycle()
        except Exception:
            logger.exception("cycle_error", cycle=self.state.cycle, state=self.cycle_state.value)
            try:
                self.store.save(self.state)
            except Exception:
                logger.exception("state_save_failed", cycle=self.state.cycle)
            return None

    async def _run_cycle(self) -> TradeRecord:
        now = datetime.now(timezone.utc)

        # --- 1. FETCHING ---
        self._set_state(CycleState.FETCHING)
        snapshot = await self._fetch_snapshot()
        price = snapshot.quote.price
        if price > 0:
            self.state.record_price(price, self.settings.PRICE_HISTORY_LIMIT, time=now)

        # --- 2. DECIDING ---
        self._set_state(CycleState.DECIDING)
        if price <= 0:
            decision: Decision = hold("No valid price observed yet; skipping trading")
            source = "rules"
            requested_action = decision.action
        else:
            context = self._build_context(snapshot)
            decision, source = await self.gateway.decide(context)
            requested_action = decision.action
            if not snapshot.venue_available and isinstance(
                decision, (OpenDecision, CloseDecision, DepositDecision)
            ):
                logger.info("perp_decision_without_venue", action=decision.action)
                decision = hold(
                    f"{decision.action} requires the perp venue, which is unavailable",
                    confidence=decision.confidence,
                    outlook=decision.outlook,
                )
            elif not snapshot.balances_ok and isinstance(
                decision, (TransferDecision, DepositDecision)
            ):
                logger.info("transfer_without_balances", action=decision.action)
                decision = hold(
                    f"{decision.action} needs confirmed balances, which could not be read",
                    confidence=decision.confidence,
                    outlook=decision.outlook,
                )

        # --- 3. GUARDING ---
        self._set_state(CycleState.GUARDING)
        verdict = self.guard.review(decision, snapshot.position, self.state, now)

        # --- 4. EXECUTING ---
        self._set_state(CycleState.EXECUTING)
        approved = verdict.decision
        result = await self.router.execute(
            approved,
            ExecutionContext(balances=snapshot.balances, position=snapshot.position, price=price),
            self.state,
            now,
        )

        # --- 5. RECORDING ---
        self._set_state(CycleState.RECORDING)
        balances, position = snapshot.balances, snapshot.position
        balances_ok = snapshot.balances_ok
        if result.tx_ref:
            # Funds moved: record post-execution balances
            refreshed = await self._fetch_accounts()
            balances, position, balances_ok = (
                refreshed.balances,
                refreshed.position,
                refreshed.balances_ok,
            )

        trade = TradeRecord(
            time=now,
            cycle=self.state.cycle,
            action=result.action,
            requested_action=requested_action,
            amount=result.amount,
            tx_ref=result.tx_ref,
            confidence=approved.confidence,
            reason=approved.reason,
            outlook=approved.outlook,
            source=source,
            guard_rule=verdict.failure.rule if verdict.failure else None,
            error=result.error,
            price=price,
            agent_balance=balances.agent,
            treasury_balance=balances.treasury,
            perp_collateral=balances.perp_collateral,
            position=position,
            realized_pnl=result.realized_pnl,
            strategy_pnl=result.strategy_pnl,
        )
        self.state.record_trade(trade, self.settings.TRADE_HISTORY_LIMIT)
        if balances_ok:
            self.state.record_balances(balances, self.settings.BALANCE_HISTORY_LIMIT, time=now)
        self.store.save(self.state)
        if self.dashboard is not None:
            self.dashboard.write(self.state, balances, position, now)

        logger.info(
            "cycle_complete",
            cycle=self.state.cycle,
            price=price,
            action=trade.action,
            requested=trade.requested_action,
            amount=trade.amount,
            source=source,
            guard_rule=trade.guard_rule,
            tx_ref=trade.tx_ref,
        )
        self._set_state(CycleState.IDLE)
        return trade

    def _build_context(self, snapshot: CycleSnapshot) -> DecisionContext:
        return DecisionContext(
            balances=snapshot.balances,
            position=snapshot.position,
            quote=snapshot.quote,
            sentiment=snapshot.sentiment,
            trend=analyze_trend(self.state.prices),
            price_history=self.state.prices[-PROMPT_PRICE_HISTORY:],
            recent_trades=self.state.trades[-PROMPT_RECENT_TRADES:],
            cycle=self.state.cycle,
            max_cycles=self.settings.MAX_CYCLES,
            venue_available=snapshot.venue_available,
        )

    # --- Fetching ---

    async def _fetch_snapshot(self) -> CycleSnapshot:
        """All read-only fetches concurrently; each falls back on its own."""
        quote, sentiment, accounts = await asyncio.gather(
            self._guarded(self.market_data.get_price(), PriceQuote(price=0.0, stale=True), "price"),
            self._guarded(self.market_data.get_sentiment(), Sentiment(), "sentiment"),
            self._fetch_accounts(),
        )
        accounts.quote = quote
        accounts.sentiment = sentiment
        return accounts

    async def _fetch_accounts(self) -> CycleSnapshot:
        agent, treasury, (position, collateral, venue_ok) = await asyncio.gather(
            self._guarded(self.ledger.get_balance(AGENT_ACCOUNT), None, "agent_balance"),
            self._guarded(self.ledger.get_balance(TREASURY_ACCOUNT), None, "treasury_balance"),
            self._read_venue(),
        )
        collateral = collateral or Collateral()
        balances = Balances(
            agent=agent or 0.0,
            treasury=treasury or 0.0,
            perp_collateral=collateral.balance,
            free_collateral=collateral.free,
            unrealized_pnl=position.unrealized_pnl if position is not None else 0.0,
        )
        return CycleSnapshot(
            balances=balances,
            balances_ok=agent is not None and treasury is not None,
            position=position,
            venue_read_ok=venue_ok,
            # A failed read this cycle leaves position unknown; no perp action may rely on it
            venue_available=self.circuit.available and venue_ok,
        )

    async def _read_venue(self) -> tuple[Position | None, Collateral | None, bool]:
        venue = self.circuit.venue
        if venue is None or not self.circuit.should_query():
            return None, None, False
        try:
            position, collateral = await asyncio.wait_for(
                asyncio.gather(venue.get_position(), venue.get_collateral()),
                timeout=self.settings.FETCH_TIMEOUT_SECONDS,
            )
        except Exception as e:
            self.circuit.record_failure(str(e) or type(e).__name__)
            return None, None, False
        self.circuit.record_success()
        return position, collateral, True

    async def _guarded(self, coro: Awaitable, default, label: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.settings.FETCH_TIMEOUT_SECONDS)
        except Exception as e:
            logger.warning("fetch_failed", source=label, error=str(e) or type(e).__name__)
            return default
