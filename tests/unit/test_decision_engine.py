"""Unit tests for RuleBasedDecisionEngine: rule priority and boundary values."""

from __future__ import annotations

import pytest

from agentic_trader.decision_engine import RuleBasedDecisionEngine
from agentic_trader.models.decision import (
    CloseDecision,
    DepositDecision,
    HoldDecision,
    OpenDecision,
    TransferDecision,
)


@pytest.fixture
def engine(settings):
    return RuleBasedDecisionEngine(settings)


# ---------------------------------------------------------------------------
# Treasury rules (no perp venue)
# ---------------------------------------------------------------------------


class TestTreasuryRules:
    def test_bearish_allocates_to_treasury(self, engine, make_context):
        """agent=10, treasury=10, 24h -5% -> ALLOCATE ~3, confidence 70."""
        decision = engine.decide(make_context(agent=10, treasury=10, change_24h=-5.0))
        assert isinstance(decision, TransferDecision)
        assert decision.action == "ALLOCATE_TO_TREASURY"
        assert decision.amount == pytest.approx(3.0)
        assert decision.confidence == 70
        assert decision.outlook == "bearish"

    def test_bearish_by_momentum(self, engine, make_context):
        decision = engine.decide(make_context(momentum=-1.6))
        assert decision.action == "ALLOCATE_TO_TREASURY"

    def test_bearish_with_tiny_agent_balance_keeps_floor(self, engine, make_context):
        decision = engine.decide(make_context(agent=1.0, treasury=10, change_24h=-5.0))
        # min(0.3, 0.5) = 0.3 -> raised to the minimum trade size
        assert decision.action == "ALLOCATE_TO_TREASURY"
        assert decision.amount == pytest.approx(0.5)

    def test_bearish_with_agent_below_min_falls_through(self, engine, make_context):
        decision = engine.decide(make_context(agent=0.4, treasury=10, change_24h=-5.0))
        # agent share 4% -> rebalance instead
        assert decision.action == "REBALANCE"

    def test_bullish_withdraws_from_treasury(self, engine, make_context):
        decision = engine.decide(make_context(agent=10, treasury=10, change_24h=5.0))
        assert decision.action == "WITHDRAW_FROM_TREASURY"
        assert decision.amount == pytest.approx(3.0)
        assert decision.confidence == 65
        assert decision.outlook == "bullish"

    def test_exact_threshold_is_not_a_signal(self, engine, make_context):
        decision = engine.decide(make_context(change_24h=-3.0, momentum=-1.5))
        assert isinstance(decision, HoldDecision)

    def test_skewed_portfolio_rebalances(self, engine, make_context):
        decision = engine.decide(make_context(agent=16, treasury=4))
        assert decision.action == "REBALANCE"
        assert decision.amount == pytest.approx(6.0)
        assert decision.confidence == 60

    def test_balanced_portfolio_holds(self, engine, make_context):
        decision = engine.decide(make_context(agent=12, treasury=8))
        assert isinstance(decision, HoldDecision)
        assert decision.confidence == 55
        assert "No clear signal" in decision.reason

    def test_insufficient_balance_holds(self, engine, make_context):
        decision = engine.decide(make_context(agent=0.4, treasury=0.5, change_24h=-10))
        assert isinstance(decision, HoldDecision)
        assert decision.confidence == 50
        assert decision.reason == "Insufficient balance"

    def test_perp_rules_skipped_without_venue(self, engine, make_context):
        decision = engine.decide(
            make_context(free_collateral=20, change_24h=-6.0, venue_available=False)
        )
        assert decision.action == "ALLOCATE_TO_TREASURY"


# ---------------------------------------------------------------------------
# Perp rules (venue available)
# ---------------------------------------------------------------------------


class TestReversal:
    def test_long_closed_on_bearish_change(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("LONG"), change_24h=-3.5, free_collateral=10, venue_available=True
        )
        decision = engine.decide(ctx)
        assert isinstance(decision, CloseDecision)
        assert decision.action == "CLOSE_LONG"
        assert decision.confidence == 75

    def test_short_closed_on_bullish_momentum(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("SHORT"), momentum=2.5, free_collateral=10, venue_available=True
        )
        decision = engine.decide(ctx)
        assert decision.action == "CLOSE_SHORT"

    def test_long_kept_on_bullish_signal(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("LONG"), change_24h=5.0, free_collateral=10, venue_available=True
        )
        decision = engine.decide(ctx)
        # No perp rule fires; treasury rule (bullish withdraw) takes over
        assert decision.action == "WITHDRAW_FROM_TREASURY"


class TestTakeProfitStopLoss:
    def test_take_profit_above_8pct_of_free_collateral(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("LONG", unrealized_pnl=0.9),
            free_collateral=10,
            venue_available=True,
        )
        decision = engine.decide(ctx)
        assert decision.action == "CLOSE_LONG"
        assert decision.confidence == 80
        assert decision.reason.startswith("Take profit")

    def test_at_take_profit_threshold_holds_position(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("SHORT", unrealized_pnl=0.8),
            free_collateral=10,
            venue_available=True,
        )
        decision = engine.decide(ctx)
        assert not isinstance(decision, CloseDecision)

    def test_stop_loss_below_10pct(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("SHORT", unrealized_pnl=-1.1),
            free_collateral=10,
            venue_available=True,
        )
        decision = engine.decide(ctx)
        assert decision.action == "CLOSE_SHORT"
        assert decision.confidence == 85
        assert decision.reason.startswith("Stop loss")

    def test_zero_free_collateral_skips_tp_sl(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("LONG", unrealized_pnl=-5.0),
            free_collateral=0,
            venue_available=True,
        )
        decision = engine.decide(ctx)
        assert not isinstance(decision, CloseDecision)

    def test_reversal_beats_take_profit(self, engine, make_context, make_position):
        ctx = make_context(
            position=make_position("LONG", unrealized_pnl=5.0),
            free_collateral=10,
            change_24h=-4.0,
            venue_available=True,
        )
        decision = engine.decide(ctx)
        assert decision.confidence == 75


class TestOpen:
    def test_bearish_opens_short(self, engine, make_context):
        ctx = make_context(free_collateral=20, change_24h=-4.5, venue_available=True)
        decision = engine.decide(ctx)
        assert isinstance(decision, OpenDecision)
        assert decision.action == "OPEN_SHORT"
        assert decision.size == pytest.approx(10.0)
        assert decision.leverage == 2.0
        assert decision.confidence == 65

    def test_bullish_momentum_opens_long(self, engine, make_context):
        ctx = make_context(free_collateral=20, momentum=2.1, venue_available=True)
        decision = engine.decide(ctx)
        assert decision.action == "OPEN_LONG"

    def test_size_capped_at_max(self, engine, make_context):
        ctx = make_context(free_collateral=500, change_24h=6.0, venue_available=True)
        decision = engine.decide(ctx)
        assert decision.size == pytest.approx(50.0)

    def test_open_threshold_is_4pct_on_24h(self, engine, make_context):
        ctx = make_context(free_collateral=20, change_24h=-3.9, venue_available=True)
        decision = engine.decide(ctx)
        assert not isinstance(decision, OpenDecision)

    def test_no_open_below_min_perp_size(self, engine, make_context):
        ctx = make_context(agent=2, treasury=2, free_collateral=0.5, change_24h=-6.0, venue_available=True)
        decision = engine.decide(ctx)
        assert not isinstance(decision, OpenDecision)


class TestDeposit:
    def test_deposit_when_collateral_low(self, engine, make_context):
        ctx = make_context(agent=10, treasury=10, free_collateral=0, venue_available=True)
        decision = engine.decide(ctx)
        assert isinstance(decision, DepositDecision)
        assert decision.amount == pytest.approx(3.0)
        assert decision.confidence == 60

    def test_deposit_capped(self, engine, make_context):
        ctx = make_context(agent=100, treasury=100, free_collateral=0, venue_available=True)
        decision = engine.decide(ctx)
        assert decision.amount == pytest.approx(20.0)

    def test_no_deposit_at_threshold(self, engine, make_context):
        ctx = make_context(agent=5.0, treasury=5.0, free_collateral=0, venue_available=True)
        decision = engine.decide(ctx)
        assert not isinstance(decision, DepositDecision)

    def test_deposit_tops_up_margin_of_held_position(self, engine, make_context, make_position):
        ctx = make_context(
            agent=10, free_collateral=0, position=make_position("LONG"), venue_available=True
        )
        decision = engine.decide(ctx)
        assert isinstance(decision, DepositDecision)
        assert decision.amount == pytest.approx(3.0)

    def test_close_rules_beat_deposit(self, engine, make_context, make_position):
        ctx = make_context(
            agent=10,
            free_collateral=0.5,
            change_24h=-3.5,
            position=make_position("LONG"),
            venue_available=True,
        )
        decision = engine.decide(ctx)
        assert decision.action == "CLOSE_LONG"


class TestDeterminism:
    def test_same_context_same_decision(self, engine, make_context):
        ctx = make_context(agent=10, treasury=10, change_24h=-5.0)
        assert engine.decide(ctx) == engine.decide(ctx)
