"""Durable AgentState file + derived dashboard artifact."""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from agentic_trader.models.state import AgentState

if TYPE_CHECKING:
    from agentic_trader.models.position import Balances, Position

logger = structlog.get_logger()


class StateCorruptionError(Exception):
    """State file exists but cannot be parsed into AgentState."""


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class StateStore:
    """Single-writer JSON persistence for AgentState."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> AgentState:
        """Load persisted state, or a fresh one if no file exists."""
        if not self.path.exists():
            logger.info("state_initialized", path=str(self.path))
            return AgentState()
        try:
            state = AgentState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError, OSError) as e:
            raise StateCorruptionError(f"Cannot load state from {self.path}: {e}") from e
        logger.info(
            "state_loaded",
            path=str(self.path),
            cycle=state.cycle,
            trades=len(state.trades),
            open_position=state.open_position is not None,
        )
        return state

    def save(self, state: AgentState) -> None:
        _atomic_write(self.path, state.model_dump_json(indent=2))
        logger.debug("state_saved", path=str(self.path), cycle=state.cycle)


class DashboardWriter:
    """Read-only mirror for external display; never read back by the agent."""

    def __init__(self, path: str | Path, tail: int = 50) -> None:
        self.path = Path(path)
        self.tail = tail

    def build(
        self,
        state: AgentState,
        balances: Balances,
        position: Position | None,
        now: datetime | None = None,
    ) -> dict:
        now = now or datetime.now(timezone.utc)
        uptime = (now - state.started_at).total_seconds()
        total = balances.total
        initial = state.initial_total_balance
        total_return_pct = (
            (total - initial) / initial * 100 if initial is not None and initial > 0 else 0.0
        )

        return {
            "lastUpdated": now.isoformat(),
            "balances": {
                "agent": balances.agent,
                "treasury": balances.treasury,
                "perpCollateral": balances.perp_collateral,
                "freeCollateral": balances.free_collateral,
                "unrealizedPnl": balances.unrealized_pnl,
                "total": total,
            },
            "pnl": {
                "initialTotal": initial,
                "totalReturnPct": total_return_pct,
                "executionRealized": state.realized_pnl,
                "strategyRealized": state.strategy_pnl,
                "spreadCost": state.strategy_pnl - state.realized_pnl,
                "closedPositions": state.closed_positions,
            },
            "stats": {
                "totalCycles": state.cycle,
                "totalTransactions": state.total_transactions,
                "totalVolumeUSDC": state.total_volume_usdc,
                "uptime": uptime,
                "avgCycleTime": uptime / state.cycle if state.cycle > 0 else 0.0,
            },
            "position": position.model_dump(mode="json") if position is not None else None,
            "openPositionRef": (
                state.open_position.model_dump(mode="json") if state.open_position else None
            ),
            "prices": [p.model_dump(mode="json") for p in state.prices[-self.tail :]],
            "trades": [t.model_dump(mode="json") for t in state.trades[-self.tail :]],
            "balanceHistory": [
                b.model_dump(mode="json") for b in state.balance_history[-self.tail :]
            ],
        }

    def write(
        self,
        state: AgentState,
        balances: Balances,
        position: Position | None,
        now: datetime | None = None,
    ) -> None:
        data = self.build(state, balances, position, now)
        _atomic_write(self.path, json.dumps(data, indent=2))
        logger.debug("dashboard_written", path=str(self.path))
