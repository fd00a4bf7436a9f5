"""PriceReading, PriceQuote, Sentiment, TrendSignal Pydantic models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class PriceReading(BaseModel):
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    price: float


class PriceQuote(BaseModel):
    price: float = 0.0  # 0.0 = no good price ever observed, skip trading
    change_24h: float = 0.0
    stale: bool = False


class Sentiment(BaseModel):
    market_cap_change: float = 0.0
    btc_dominance: float = 0.0
    total_market_cap: float = 0.0


class TrendSignal(BaseModel):
    trend: str = "neutral"  # bullish, bearish, neutral
    strength: float = 0.0
    momentum: float = 0.0
    sma_short: float = 0.0
    sma_long: float = 0.0
    sma_diff_pct: float = 0.0
    support: float = 0.0
    resistance: float = 0.0
    range_position: float = 50.0
    consecutive_up: int = 0
    consecutive_down: int = 0
    readings: int = 0
