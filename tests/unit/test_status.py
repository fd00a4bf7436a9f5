"""Unit tests for the plain-text status report."""

from __future__ import annotations

import json

import pytest

from agentic_trader.status import StatusFormatter, load_dashboard

SAMPLE = {
    "lastUpdated": "2025-01-15T12:00:00+00:00",
    "balances": {"agent": 11.0, "treasury": 9.5, "perpCollateral": 1.25, "total": 21.75},
    "pnl": {
        "totalReturnPct": 8.75,
        "executionRealized": -0.6,
        "strategyRealized": -0.5,
        "spreadCost": 0.1,
        "closedPositions": 1,
    },
    "stats": {
        "totalCycles": 42,
        "totalTransactions": 7,
        "totalVolumeUSDC": 1234.5,
        "uptime": 3725,
    },
    "position": None,
    "trades": [],
}


@pytest.fixture
def formatter():
    return StatusFormatter(trades=2)


class TestFormatReport:
    def test_balances_and_stats(self, formatter):
        report = formatter.format_report(SAMPLE)
        assert "Total:      $21.75" in report
        assert "Return:          +8.75%" in report
        assert "Execution P&L:   -0.60" in report
        assert "Volume: $1,234.50" in report
        assert "Uptime: 1h 2m" in report
        assert "Cycles: 42" in report

    def test_empty_dashboard_defaults(self, formatter):
        report = formatter.format_report({})
        assert "Last Updated: N/A" in report
        assert "No open position" in report
        assert "No trades yet" in report


class TestFormatPosition:
    def test_open_short(self, formatter):
        text = formatter.format_position(
            {"direction": "SHORT", "base_amount": -0.25, "quote_amount": -25.0, "unrealized_pnl": 0.4}
        )
        assert "SHORT size=0.2500 notional=$25.00 uPnL=+0.40" in text


class TestFormatTrades:
    def test_tail_and_downgrade_marker(self, formatter):
        trades = [
            {"cycle": 1, "action": "HOLD", "requested_action": "HOLD"},
            {"cycle": 2, "action": "REBALANCE", "amount": 2.0, "source": "advisor", "reason": "drift"},
            {"cycle": 3, "action": "HOLD", "requested_action": "CLOSE_LONG", "reason": "min hold"},
        ]
        text = formatter.format_trades(trades)
        assert text.startswith("Last 2 Trades")
        assert "#1" not in text
        assert "#2 REBALANCE $2.00 [advisor] drift" in text
        assert "#3 HOLD (wanted CLOSE_LONG)" in text


class TestLoadDashboard:
    def test_missing_file(self, tmp_path):
        assert load_dashboard(tmp_path / "nope.json") is None

    def test_reads_json(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text(json.dumps(SAMPLE))
        assert load_dashboard(path)["stats"]["totalCycles"] == 42
