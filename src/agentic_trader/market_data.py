"""Market data provider (CoinGecko over httpx) with price sanity filter."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from agentic_trader.models.market import PriceQuote, Sentiment

if TYPE_CHECKING:
    from agentic_trader.config import Settings

logger = structlog.get_logger()


class MarketDataProvider(Protocol):
    async def get_price(self) -> PriceQuote: ...

    async def get_sentiment(self) -> Sentiment: ...


class PriceSanityFilter:
    """
    Keeps the last accepted price. A reading that jumps more than
    `max_jump_pct` away from it, or a missing reading, is replaced by the
    last accepted price. With no accepted price yet, returns the 0.0 sentinel.
    """

    def __init__(self, max_jump_pct: float = 0.30) -> None:
        self.max_jump_pct = max_jump_pct
        self.last_good: PriceQuote | None = None

    def seed(self, price: float) -> None:
        """Prime with a previously persisted price."""
        if price > 0 and self.last_good is None:
            self.last_good = PriceQuote(price=price)

    def accept(self, quote: PriceQuote | None) -> PriceQuote:
        if quote is None or quote.price <= 0:
            return self._fallback("missing")

        if self.last_good is not None:
            jump = abs(quote.price - self.last_good.price) / self.last_good.price
            if jump > self.max_jump_pct:
                logger.warning(
                    "price_jump_rejected",
                    price=quote.price,
                    last_good=self.last_good.price,
                    jump_pct=round(jump * 100, 2),
                )
                return self._fallback("jump")

        self.last_good = quote
        return quote

    def _fallback(self, cause: str) -> PriceQuote:
        if self.last_good is None:
            logger.warning("price_unavailable", cause=cause)
            return PriceQuote(price=0.0, change_24h=0.0, stale=True)
        return PriceQuote(
            price=self.last_good.price,
            change_24h=self.last_good.change_24h,
            stale=True,
        )


class CoinGeckoMarketData:
    """Price and global-sentiment reads; never raises, never fabricates."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.sanity = PriceSanityFilter(settings.MAX_PRICE_JUMP_PCT)
        self.last_sentiment = Sentiment()

    @property
    def last_price(self) -> float:
        """Last accepted price, 0.0 if none yet."""
        return self.sanity.last_good.price if self.sanity.last_good is not None else 0.0

    async def get_price(self) -> PriceQuote:
        asset = self.settings.ASSET_ID
        quote: PriceQuote | None = None
        try:
            data = await self._get_json(
                "/simple/price",
                params={"ids": asset, "vs_currencies": "usd", "include_24hr_change": "true"},
            )
            entry = data[asset]
            quote = PriceQuote(
                price=float(entry["usd"]),
                change_24h=float(entry.get("usd_24h_change") or 0.0),
            )
        except Exception as e:
            logger.warning("price_fetch_failed", asset=asset, error=str(e))
        return self.sanity.accept(quote)

    async def get_sentiment(self) -> Sentiment:
        try:
            data = (await self._get_json("/global"))["data"]
            self.last_sentiment = Sentiment(
                total_market_cap=float(data["total_market_cap"]["usd"]),
                market_cap_change=float(data["market_cap_change_percentage_24h_usd"]),
                btc_dominance=float(data["market_cap_percentage"]["btc"]),
            )
        except Exception as e:
            logger.warning("sentiment_fetch_failed", error=str(e))
        return self.last_sentiment

    @retry(stop=stop_after_attempt(2), wait=wait_exponential(multiplier=1, min=1, max=3), reraise=True)
    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        """Low-level HTTP GET with retry on transient errors."""
        async with httpx.AsyncClient(timeout=self.settings.MARKET_DATA_TIMEOUT_SECONDS) as http:
            response = await http.get(f"{self.settings.COINGECKO_URL}{path}", params=params)
            response.raise_for_status()
            return response.json()
