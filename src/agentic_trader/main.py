"""Entry point: wire collaborators and run the decision loop."""

import asyncio
import logging
import signal
import sys

import structlog

from agentic_trader.advisor import AdvisorGateway, AnthropicAdvisor
from agentic_trader.anti_churn import AntiChurnGuard
from agentic_trader.config import ConfigurationError, Settings, validate_settings
from agentic_trader.decision_engine import RuleBasedDecisionEngine
from agentic_trader.execution_router import ExecutionRouter
from agentic_trader.market_data import CoinGeckoMarketData
from agentic_trader.state_machine import Orchestrator
from agentic_trader.state_store import DashboardWriter, StateCorruptionError, StateStore
from agentic_trader.venues.base import AGENT_ACCOUNT, TREASURY_ACCOUNT
from agentic_trader.venues.circuit import VenueCircuit
from agentic_trader.venues.paper import PaperPerpVenue, PaperSpotLedger

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=True,
    )


async def main() -> int:
    settings = Settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    try:
        validate_settings(settings)
        store = StateStore(settings.STATE_FILE)
        state = store.load()
    except (ConfigurationError, StateCorruptionError) as e:
        logger.critical("startup_failed", error=str(e))
        return 1

    market_data = CoinGeckoMarketData(settings)
    if state.prices:
        market_data.sanity.seed(state.prices[-1].price)

    ledger = PaperSpotLedger(
        balances={
            AGENT_ACCOUNT: settings.PAPER_AGENT_BALANCE,
            TREASURY_ACCOUNT: settings.PAPER_TREASURY_BALANCE,
        },
        confirmations=settings.PAPER_CONFIRMATIONS,
        confirm_interval=settings.PAPER_CONFIRM_INTERVAL_SECONDS,
        confirm_timeout=settings.PAPER_CONFIRM_TIMEOUT_SECONDS,
    )
    venue = PaperPerpVenue(
        ledger,
        price_source=lambda: market_data.last_price,
        spread_pct=settings.PAPER_SPREAD_PCT,
    )
    circuit = VenueCircuit(
        venue,
        failure_threshold=settings.VENUE_FAILURE_THRESHOLD,
        retry_seconds=settings.VENUE_RETRY_SECONDS,
    )
    await circuit.probe()

    rules = RuleBasedDecisionEngine(settings)
    advisor = AnthropicAdvisor(settings) if settings.ANTHROPIC_API_KEY else None
    if advisor is None:
        logger.warning("advisor_disabled", reason="ANTHROPIC_API_KEY not set, rules only")

    orchestrator = Orchestrator(
        settings=settings,
        state=state,
        market_data=market_data,
        ledger=ledger,
        circuit=circuit,
        gateway=AdvisorGateway(settings, rules, advisor),
        guard=AntiChurnGuard(settings),
        router=ExecutionRouter(settings, ledger, venue),
        store=store,
        dashboard=DashboardWriter(settings.DASHBOARD_FILE, tail=settings.DASHBOARD_TAIL),
    )

    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        orchestrator.running = False

    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _signal_handler)
    else:
        signal.signal(signal.SIGINT, lambda *_: _signal_handler())

    logger.info(
        "session_started",
        backend=settings.BACKEND,
        asset=settings.ASSET_SYMBOL,
        advisor=settings.ADVISOR_MODEL if advisor else None,
        venue=circuit.status.value,
    )
    try:
        await orchestrator.run()
    except asyncio.CancelledError:
        pass
    finally:
        await orchestrator.stop()
        store.save(state)
        logger.info(
            "session_summary",
            total_cycles=state.cycle,
            session_cycles=orchestrator.session_cycles,
            total_transactions=state.total_transactions,
            total_volume_usdc=round(state.total_volume_usdc, 2),
            realized_pnl=round(state.realized_pnl, 4),
            strategy_pnl=round(state.strategy_pnl, 4),
            closed_positions=state.closed_positions,
        )
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
