"""Short-window trend, momentum and support/resistance from price readings."""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from agentic_trader.models.market import PriceReading, TrendSignal

MIN_READINGS = 5
WINDOW = 10
SHORT_SMA = 5
DEAD_ZONE_PCT = 0.1


def analyze_trend(readings: Sequence[PriceReading]) -> TrendSignal:
    """
    Trend over the most recent window of readings:

    | Output         | Definition                                              |
    |----------------|---------------------------------------------------------|
    | trend          | SMA(5) vs SMA(window) diff, ±0.1% dead zone -> neutral  |
    | momentum       | % change first -> last reading of the window            |
    | support/resist | min / max of the window                                 |
    | strength       | clamp(|sma diff %| * 20 + longest run * 10, 0, 100)     |
    | range_position | 0 = at support, 100 = at resistance                     |

    Fewer than 5 readings yields a neutral, zero-strength signal.
    """
    if len(readings) < MIN_READINGS:
        return TrendSignal(readings=len(readings))

    window = pd.Series([r.price for r in readings[-WINDOW:]], dtype="float64")
    last = float(window.iloc[-1])
    first = float(window.iloc[0])

    sma_short = float(window.tail(SHORT_SMA).mean())
    sma_long = float(window.mean())
    sma_diff_pct = (sma_short - sma_long) / sma_long * 100 if sma_long else 0.0

    if sma_diff_pct > DEAD_ZONE_PCT:
        trend = "bullish"
    elif sma_diff_pct < -DEAD_ZONE_PCT:
        trend = "bearish"
    else:
        trend = "neutral"

    momentum = (last - first) / first * 100 if first else 0.0

    support = float(window.min())
    resistance = float(window.max())
    price_range = resistance - support
    range_position = (last - support) / price_range * 100 if price_range > 0 else 50.0

    up, down = _consecutive_run(window)
    strength = abs(sma_diff_pct) * 20 + max(up, down) * 10
    strength = max(0.0, min(100.0, strength))

    return TrendSignal(
        trend=trend,
        strength=strength,
        momentum=momentum,
        sma_short=sma_short,
        sma_long=sma_long,
        sma_diff_pct=sma_diff_pct,
        support=support,
        resistance=resistance,
        range_position=range_position,
        consecutive_up=up,
        consecutive_down=down,
        readings=len(window),
    )


def _consecutive_run(window: pd.Series) -> tuple[int, int]:
    """Count same-sign steps walking back from the newest reading."""
    steps = window.diff().dropna().tolist()
    if not steps or steps[-1] == 0:
        return 0, 0

    rising = steps[-1] > 0
    count = 0
    for step in reversed(steps):
        if (step > 0) != rising or step == 0:
            break
        count += 1
    return (count, 0) if rising else (0, count)
