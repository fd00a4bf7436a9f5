"""Deterministic rule-based decision engine (advisor fallback)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from agentic_trader.models.decision import (
    Action,
    CloseDecision,
    Decision,
    DepositDecision,
    HoldDecision,
    OpenDecision,
    TransferDecision,
)

if TYPE_CHECKING:
    from agentic_trader.config import Settings
    from agentic_trader.models.context import DecisionContext

logger = structlog.get_logger()

# Signal thresholds, percent
CLOSE_CHANGE_24H = 3.0
OPEN_CHANGE_24H = 4.0
PERP_MOMENTUM = 2.0
TREASURY_CHANGE_24H = 3.0
TREASURY_MOMENTUM = 1.5

TREASURY_MOVE_PCT = 0.3
AGENT_SHARE_MIN = 0.3
AGENT_SHARE_MAX = 0.7

CONFIDENCE_STOP_LOSS = 85
CONFIDENCE_TAKE_PROFIT = 80
CONFIDENCE_REVERSAL = 75
CONFIDENCE_BEARISH_PROTECT = 70
CONFIDENCE_OPEN = 65
CONFIDENCE_BULLISH_DEPLOY = 65
CONFIDENCE_DEPOSIT = 60
CONFIDENCE_REBALANCE = 60
CONFIDENCE_HOLD = 55
CONFIDENCE_INSUFFICIENT = 50


class RuleBasedDecisionEngine:
    """
    First matching rule wins:
    | #  | Rule                                   | Action                    | Conf |
    |----|----------------------------------------|---------------------------|------|
    | 1  | Position against 24h ±3% / mom ±2%     | CLOSE_<dir>               | 75   |
    | 2  | uPnL > +8% of free collateral          | CLOSE_<dir> (take profit) | 80   |
    | 3  | uPnL < -10% of free collateral         | CLOSE_<dir> (stop loss)   | 85   |
    | 4  | Flat, 24h ±4% / mom ±2%                | OPEN_SHORT / OPEN_LONG    | 65   |
    | 5  | Free collateral < min perp size        | DEPOSIT_TO_DRIFT          | 60   |
    | 6  | Stable total < 2x min trade            | HOLD                      | 50   |
    | 7  | Bearish 24h -3% / mom -1.5%            | ALLOCATE_TO_TREASURY      | 70   |
    | 8  | Bullish 24h +3% / mom +1.5%            | WITHDRAW_FROM_TREASURY    | 65   |
    | 9  | Agent share outside [30%, 70%]         | REBALANCE                 | 60   |
    | 10 | Otherwise                              | HOLD                      | 55   |
    Rules 1-5 only run when the perp venue is available.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def decide(self, context: DecisionContext) -> Decision:
        decision: Decision | None = None
        if context.venue_available:
            decision = self._perp_rules(context)
        if decision is None:
            decision = self._treasury_rules(context)
        logger.debug("rule_decision", action=decision.action, reason=decision.reason)
        return decision

    # --- Perp rules (1-5) ---

    def _perp_rules(self, context: DecisionContext) -> Decision | None:
        position = context.position
        if position is not None:
            decision = (
                self._check_reversal(context)
                or self._check_take_profit(context)
                or self._check_stop_loss(context)
            )
        else:
            decision = self._check_open(context)
        return decision or self._check_deposit(context)

    def _check_reversal(self, context: DecisionContext) -> Decision | None:
        position = context.position
        change = context.quote.change_24h
        momentum = context.trend.momentum
        signal = f"24h {change:+.1f}%, momentum {momentum:+.1f}%"

        if position.direction == "LONG" and (
            change < -CLOSE_CHANGE_24H or momentum < -PERP_MOMENTUM
        ):
            return CloseDecision(
                action=Action.CLOSE_LONG.value,
                confidence=CONFIDENCE_REVERSAL,
                reason=f"Bearish reversal ({signal}) - closing long",
                outlook="bearish",
            )
        if position.direction == "SHORT" and (
            change > CLOSE_CHANGE_24H or momentum > PERP_MOMENTUM
        ):
            return CloseDecision(
                action=Action.CLOSE_SHORT.value,
                confidence=CONFIDENCE_REVERSAL,
                reason=f"Bullish reversal ({signal}) - closing short",
                outlook="bullish",
            )
        return None

    def _check_take_profit(self, context: DecisionContext) -> Decision | None:
        position = context.position
        free = context.balances.free_collateral
        if free <= 0:
            return None
        target = free * self.settings.TAKE_PROFIT_PCT
        if position.unrealized_pnl > target:
            return CloseDecision(
                action=_close_action(position.direction),
                confidence=CONFIDENCE_TAKE_PROFIT,
                reason=f"Take profit: uPnL ${position.unrealized_pnl:.2f} > ${target:.2f}",
                outlook="neutral",
            )
        return None

    def _check_stop_loss(self, context: DecisionContext) -> Decision | None:
        position = context.position
        free = context.balances.free_collateral
        if free <= 0:
            return None
        limit = -free * self.settings.STOP_LOSS_PCT
        if position.unrealized_pnl < limit:
            return CloseDecision(
                action=_close_action(position.direction),
                confidence=CONFIDENCE_STOP_LOSS,
                reason=f"Stop loss: uPnL ${position.unrealized_pnl:.2f} < ${limit:.2f}",
                outlook="neutral",
            )
        return None

    def _check_open(self, context: DecisionContext) -> Decision | None:
        free = context.balances.free_collateral
        if free < self.settings.MIN_PERP_SIZE_USD:
            return None

        change = context.quote.change_24h
        momentum = context.trend.momentum
        signal = f"24h {change:+.1f}%, momentum {momentum:+.1f}%"
        size = min(free * self.settings.PERP_SIZE_PCT, self.settings.MAX_PERP_SIZE_USD)

        if change < -OPEN_CHANGE_24H or momentum < -PERP_MOMENTUM:
            return OpenDecision(
                action=Action.OPEN_SHORT.value,
                size=size,
                leverage=self.settings.DEFAULT_LEVERAGE,
                confidence=CONFIDENCE_OPEN,
                reason=f"Bearish signal ({signal}) - opening short",
                outlook="bearish",
            )
        if change > OPEN_CHANGE_24H or momentum > PERP_MOMENTUM:
            return OpenDecision(
                action=Action.OPEN_LONG.value,
                size=size,
                leverage=self.settings.DEFAULT_LEVERAGE,
                confidence=CONFIDENCE_OPEN,
                reason=f"Bullish signal ({signal}) - opening long",
                outlook="bullish",
            )
        return None

    def _check_deposit(self, context: DecisionContext) -> Decision | None:
        agent = context.balances.agent
        if context.balances.free_collateral >= self.settings.MIN_PERP_SIZE_USD:
            return None
        if agent <= self.settings.DEPOSIT_THRESHOLD_USDC:
            return None
        amount = min(agent * self.settings.DEPOSIT_PCT, self.settings.MAX_DEPOSIT_USDC)
        return DepositDecision(
            amount=amount,
            confidence=CONFIDENCE_DEPOSIT,
            reason=f"Funding perp collateral with ${amount:.2f}",
            outlook="neutral",
        )

    # --- Treasury rules (6-10) ---

    def _treasury_rules(self, context: DecisionContext) -> Decision:
        min_trade = self.settings.MIN_TRADE_USDC
        agent = context.balances.agent
        treasury = context.balances.treasury
        total = agent + treasury

        if total < min_trade * 2:
            return HoldDecision(
                confidence=CONFIDENCE_INSUFFICIENT,
                reason="Insufficient balance",
                outlook="neutral",
            )

        change = context.quote.change_24h
        momentum = context.trend.momentum
        signal = f"{change:+.1f}% 24h, momentum {momentum:+.1f}%"

        if change < -TREASURY_CHANGE_24H or momentum < -TREASURY_MOMENTUM:
            if agent > min_trade:
                amount = min(agent * TREASURY_MOVE_PCT, agent - min_trade)
                return TransferDecision(
                    action=Action.ALLOCATE_TO_TREASURY.value,
                    amount=max(min_trade, amount),
                    confidence=CONFIDENCE_BEARISH_PROTECT,
                    reason=f"Bearish signal ({signal}) - protecting capital",
                    outlook="bearish",
                )

        if change > TREASURY_CHANGE_24H or momentum > TREASURY_MOMENTUM:
            if treasury > min_trade:
                amount = min(treasury * TREASURY_MOVE_PCT, treasury - min_trade)
                return TransferDecision(
                    action=Action.WITHDRAW_FROM_TREASURY.value,
                    amount=max(min_trade, amount),
                    confidence=CONFIDENCE_BULLISH_DEPLOY,
                    reason=f"Bullish signal ({signal}) - deploying capital",
                    outlook="bullish",
                )

        agent_share = agent / total
        if agent_share > AGENT_SHARE_MAX or agent_share < AGENT_SHARE_MIN:
            diff = abs(agent - total / 2)
            if diff > min_trade:
                return TransferDecision(
                    action=Action.REBALANCE.value,
                    amount=diff,
                    confidence=CONFIDENCE_REBALANCE,
                    reason=f"Portfolio skewed (agent: {agent_share:.0%}) - rebalancing to 50/50",
                    outlook="neutral",
                )

        return HoldDecision(
            confidence=CONFIDENCE_HOLD,
            reason="No clear signal - maintaining positions",
            outlook="neutral",
        )


def _close_action(direction: str) -> str:
    return Action.CLOSE_LONG.value if direction == "LONG" else Action.CLOSE_SHORT.value
