"""Plain-text status report from the dashboard artifact."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import structlog

from agentic_trader.config import Settings

logger = structlog.get_logger()


class StatusFormatter:
    """Format the dashboard JSON as plain text."""

    def __init__(self, trades: int = 10) -> None:
        self.trades = trades

    def format_report(self, data: dict) -> str:
        balances = data.get("balances", {})
        pnl = data.get("pnl", {})
        stats = data.get("stats", {})
        lines = [
            "📊 Agent Status",
            f"Last Updated: {data.get('lastUpdated', 'N/A')}",
            "",
            "Balances",
            f"  Agent:      ${self._format_number(balances.get('agent', 0))}",
            f"  Treasury:   ${self._format_number(balances.get('treasury', 0))}",
            f"  Collateral: ${self._format_number(balances.get('perpCollateral', 0))}",
            f"  Total:      ${self._format_number(balances.get('total', 0))}",
            "",
            "Performance",
            f"  Return:          {self._signed(pnl.get('totalReturnPct', 0))}%",
            f"  Execution P&L:   {self._signed(pnl.get('executionRealized', 0))}",
            f"  Strategy P&L:    {self._signed(pnl.get('strategyRealized', 0))}",
            f"  Spread Cost:     {self._signed(pnl.get('spreadCost', 0))}",
            f"  Closed Positions: {pnl.get('closedPositions', 0)}",
            "",
            "Stats",
            f"  Cycles: {stats.get('totalCycles', 0)}",
            f"  Transactions: {stats.get('totalTransactions', 0)}",
            f"  Volume: ${self._format_number(stats.get('totalVolumeUSDC', 0))}",
            f"  Uptime: {self._format_duration(stats.get('uptime', 0))}",
        ]
        lines.append("")
        lines.append(self.format_position(data.get("position")))
        lines.append("")
        lines.append(self.format_trades(data.get("trades", [])))
        return "\n".join(lines)

    def format_position(self, position: dict | None) -> str:
        if not position:
            return "📭 No open position"
        return (
            f"📈 {position['direction']} size={abs(position.get('base_amount', 0)):.4f} "
            f"notional=${self._format_number(abs(position.get('quote_amount', 0)))} "
            f"uPnL={self._signed(position.get('unrealized_pnl', 0))}"
        )

    def format_trades(self, trades: list) -> str:
        if not trades:
            return "No trades yet"
        lines = [f"Last {min(self.trades, len(trades))} Trades"]
        for t in trades[-self.trades :]:
            action = t.get("action", "HOLD")
            if t.get("requested_action") and t["requested_action"] != action:
                action = f"{action} (wanted {t['requested_action']})"
            lines.append(
                f"  #{t.get('cycle', 0)} {action} ${self._format_number(t.get('amount', 0))} "
                f"[{t.get('source', 'rules')}] {t.get('reason', '')}"
            )
        return "\n".join(lines)

    @staticmethod
    def _format_number(value: float) -> str:
        return f"{value:,.2f}"

    @staticmethod
    def _signed(value: float) -> str:
        return f"{value:+,.2f}"

    @staticmethod
    def _format_duration(seconds: float) -> str:
        seconds = int(seconds)
        hours, rem = divmod(seconds, 3600)
        minutes = rem // 60
        return f"{hours}h {minutes}m"


def load_dashboard(path: str | Path) -> dict | None:
    path = Path(path)
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


def run() -> None:
    settings = Settings()
    path = sys.argv[1] if len(sys.argv) > 1 else settings.DASHBOARD_FILE
    try:
        data = load_dashboard(path)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("dashboard_unreadable", path=str(path), error=str(e))
        sys.exit(1)
    if data is None:
        print(f"No dashboard at {path}; has the agent completed a cycle?")
        sys.exit(1)
    print(StatusFormatter().format_report(data))


if __name__ == "__main__":
    run()
