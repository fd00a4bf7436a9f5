"""Build the advisor prompt from a DecisionContext."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from agentic_trader.models.context import DecisionContext

logger = structlog.get_logger()

ACTION_GUIDE = """\
- ALLOCATE_TO_TREASURY: move USDC agent -> treasury (bearish, protect capital). Needs "amount".
- WITHDRAW_FROM_TREASURY: move USDC treasury -> agent (bullish, deploy capital). Needs "amount".
- REBALANCE: equalize agent/treasury (neutral, reduce risk). Needs "amount".
- DEPOSIT_TO_DRIFT: fund perp collateral from the agent account. Needs "amount".
- OPEN_LONG / OPEN_SHORT: open a perp position. Needs "size" (USD notional) and "leverage".
- CLOSE_LONG / CLOSE_SHORT: close the open perp position.
- HOLD: do nothing (wait for a better opportunity)."""

OUTPUT_FORMAT = """{
  "action": "<one of the actions above>",
  "amount": <USDC, transfer/deposit actions>,
  "size": <USD notional, open actions>,
  "leverage": <1-%(max_leverage)s, open actions>,
  "confidence": <0-100>,
  "reason": "<brief explanation>",
  "outlook": "bullish" | "bearish" | "neutral"
}"""


class PromptBuilder:
    def __init__(self, asset_symbol: str = "SOL", max_leverage: float = 5.0) -> None:
        self.asset_symbol = asset_symbol
        self.max_leverage = max_leverage

    def build_decision_prompt(self, context: DecisionContext) -> str:
        """Build the XML-structured decision prompt."""
        balances = context.balances
        quote = context.quote
        sentiment = context.sentiment
        trend = context.trend
        sym = self.asset_symbol

        parts = []

        # --- Account State ---
        parts.append("<account_state>")
        parts.append(f"Agent USDC: {balances.agent:.2f}")
        parts.append(f"Treasury USDC: {balances.treasury:.2f}")
        parts.append(f"Total USDC: {balances.stable_total:.2f}")
        if context.venue_available:
            parts.append(f"Perp Collateral: {balances.perp_collateral:.2f} (free: {balances.free_collateral:.2f})")
        else:
            parts.append("Perp Venue: unavailable (treasury actions only)")
        parts.append("</account_state>")

        # --- Current Position ---
        parts.append("<current_position>")
        position = context.position
        if position is not None:
            parts.append(
                f"  {sym}-PERP {position.direction}: size={position.size:.4f} "
                f"notional=${position.notional:.2f} upl=${position.unrealized_pnl:.2f}"
            )
        else:
            parts.append("  No open position")
        parts.append("</current_position>")

        # --- Market ---
        parts.append("<market>")
        parts.append(f"{sym} Price: ${quote.price:.2f}")
        parts.append(f"{sym} 24h Change: {quote.change_24h:.2f}%")
        parts.append(f"Market Cap Change: {sentiment.market_cap_change:.2f}%")
        parts.append(f"BTC Dominance: {sentiment.btc_dominance:.1f}%")
        parts.append("</market>")

        # --- Trend ---
        parts.append("<trend>")
        parts.append(f"Trend: {trend.trend} (strength {trend.strength:.0f}/100)")
        parts.append(f"Momentum: {trend.momentum:+.2f}%")
        parts.append(f"SMA5: {trend.sma_short:.2f} | SMA{trend.readings}: {trend.sma_long:.2f}")
        parts.append(
            f"Support: {trend.support:.2f} | Resistance: {trend.resistance:.2f} "
            f"| Position in range: {trend.range_position:.0f}%"
        )
        parts.append("</trend>")

        # --- Price History ---
        parts.append(f"<price_history count=\"{len(context.price_history)}\">")
        for reading in context.price_history:
            parts.append(f"  ${reading.price:.2f} @ {reading.time.strftime('%H:%M:%S')}")
        parts.append("</price_history>")

        # --- Recent Trades ---
        parts.append("<recent_trades>")
        if context.recent_trades:
            for t in context.recent_trades:
                parts.append(
                    f"  {t.action} {t.amount:.2f} USDC | {t.reason} @ {t.time.strftime('%H:%M:%S')}"
                )
        else:
            parts.append("  No trades yet")
        parts.append("</recent_trades>")

        parts.append(f"Trading Cycle: {context.cycle}/{context.max_cycles}")

        # --- Instructions ---
        parts.append("<actions>")
        parts.append(ACTION_GUIDE)
        parts.append("</actions>")
        parts.append("<output_format>")
        parts.append(OUTPUT_FORMAT % {"max_leverage": f"{self.max_leverage:g}"})
        parts.append("</output_format>")

        prompt = "\n".join(parts)
        logger.debug("decision_prompt_built", chars=len(prompt))
        return prompt
