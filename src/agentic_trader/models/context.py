"""DecisionContext: everything the rule engine and advisor see each cycle."""

from pydantic import BaseModel

from agentic_trader.models.market import PriceQuote, PriceReading, Sentiment, TrendSignal
from agentic_trader.models.position import Balances, Position
from agentic_trader.models.trade import TradeRecord


class DecisionContext(BaseModel):
    balances: Balances = Balances()
    position: Position | None = None
    quote: PriceQuote = PriceQuote()
    sentiment: Sentiment = Sentiment()
    trend: TrendSignal = TrendSignal()
    price_history: list[PriceReading] = []
    recent_trades: list[TradeRecord] = []
    cycle: int = 0
    max_cycles: int = 0
    venue_available: bool = False
