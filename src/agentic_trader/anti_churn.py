"""Anti-churn guard: throttles how often positions may open/close."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from agentic_trader.models.decision import (
    CloseDecision,
    Decision,
    HoldDecision,
    OpenDecision,
)

if TYPE_CHECKING:
    from agentic_trader.config import Settings
    from agentic_trader.models.position import Position
    from agentic_trader.models.state import AgentState

logger = structlog.get_logger()


class GuardCheck(BaseModel):
    passed: bool
    rule: str
    reason: str


class GuardVerdict(BaseModel):
    approved: bool
    decision: Decision
    failure: GuardCheck | None = None


class AntiChurnGuard:
    """
    Evaluated in order, before anything is dispatched:
    | Rule              | Applies to              | Veto when                                 |
    |-------------------|-------------------------|-------------------------------------------|
    | min_hold          | CLOSE_*, reversing OPEN | now - last open < MIN_HOLD_SECONDS        |
    | spread_tolerance  | CLOSE_*                 | 0 < -uPnL <= SPREAD_TOLERANCE_PCT*notional|
    | cooldown          | OPEN_*                  | now - last close < COOLDOWN_SECONDS       |
    | no_stacking       | OPEN_*                  | position already open in same direction   |
    A vetoed decision is replaced by HOLD and never reaches the venue.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def review(
        self,
        decision: Decision,
        position: Position | None,
        state: AgentState,
        now: datetime | None = None,
    ) -> GuardVerdict:
        now = now or datetime.now(timezone.utc)

        checks: list[GuardCheck] = []
        if isinstance(decision, CloseDecision):
            checks = [
                self._check_min_hold(state, position, now),
                self._check_spread_tolerance(position),
            ]
        elif isinstance(decision, OpenDecision):
            reversing = position is not None and position.direction != decision.direction
            if reversing:
                checks.append(self._check_min_hold(state, position, now))
            checks += [
                self._check_cooldown(state, now),
                self._check_no_stacking(decision, position),
            ]

        for check in checks:
            if not check.passed:
                logger.info(
                    "anti_churn_rejected",
                    action=decision.action,
                    rule=check.rule,
                    reason=check.reason,
                )
                replacement = HoldDecision(
                    confidence=decision.confidence,
                    reason=f"{decision.action} blocked by {check.rule}: {check.reason}",
                    outlook=decision.outlook,
                )
                return GuardVerdict(approved=False, decision=replacement, failure=check)

        return GuardVerdict(approved=True, decision=decision)

    def _check_min_hold(
        self, state: AgentState, position: Position | None, now: datetime
    ) -> GuardCheck:
        # Latest known open wins
        candidates = [state.last_position_open_at]
        if position is not None:
            candidates.append(position.opened_at)
        known = [t for t in candidates if t is not None]
        opened = max(known) if known else None
        if opened is None:
            return GuardCheck(passed=True, rule="min_hold", reason="No recorded open")
        held = (now - opened).total_seconds()
        if held < self.settings.MIN_HOLD_SECONDS:
            return GuardCheck(
                passed=False,
                rule="min_hold",
                reason=f"Held {held:.0f}s < min {self.settings.MIN_HOLD_SECONDS}s",
            )
        return GuardCheck(passed=True, rule="min_hold", reason="OK")

    def _check_spread_tolerance(self, position: Position | None) -> GuardCheck:
        if position is None or position.unrealized_pnl >= 0:
            return GuardCheck(passed=True, rule="spread_tolerance", reason="No loss to excuse")
        loss = -position.unrealized_pnl
        tolerance = position.notional * self.settings.SPREAD_TOLERANCE_PCT
        if loss <= tolerance:
            return GuardCheck(
                passed=False,
                rule="spread_tolerance",
                reason=f"Loss ${loss:.4f} <= spread tolerance ${tolerance:.4f}",
            )
        return GuardCheck(passed=True, rule="spread_tolerance", reason="OK")

    def _check_cooldown(self, state: AgentState, now: datetime) -> GuardCheck:
        closed = state.last_position_close_at
        if closed is None:
            return GuardCheck(passed=True, rule="cooldown", reason="No recorded close")
        elapsed = (now - closed).total_seconds()
        if elapsed < self.settings.COOLDOWN_SECONDS:
            remaining = self.settings.COOLDOWN_SECONDS - elapsed
            return GuardCheck(
                passed=False,
                rule="cooldown",
                reason=f"Cooldown active, {remaining:.0f}s remaining",
            )
        return GuardCheck(passed=True, rule="cooldown", reason="OK")

    def _check_no_stacking(
        self, decision: OpenDecision, position: Position | None
    ) -> GuardCheck:
        if position is not None and position.direction == decision.direction:
            return GuardCheck(
                passed=False,
                rule="no_stacking",
                reason=f"{position.direction} position already open",
            )
        return GuardCheck(passed=True, rule="no_stacking", reason="OK")
