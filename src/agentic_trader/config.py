"""Settings (pydantic-settings, loaded from env vars)."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # --- Advisor (Anthropic) ---
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str | None = None
    ADVISOR_MODEL: str = "claude-sonnet-4-20250514"
    ADVISOR_MAX_TOKENS: int = 300
    ADVISOR_TIMEOUT_SECONDS: float = 30.0

    # --- Market Data ---
    COINGECKO_URL: str = "https://api.coingecko.com/api/v3"
    ASSET_ID: str = "solana"
    ASSET_SYMBOL: str = "SOL"
    MARKET_DATA_TIMEOUT_SECONDS: float = 10.0
    MAX_PRICE_JUMP_PCT: float = 0.30

    # --- Decision Cycle ---
    TRADE_INTERVAL_SECONDS: float = 30.0
    MAX_CYCLES: int = 200
    FETCH_TIMEOUT_SECONDS: float = 15.0

    # --- Treasury Transfers ---
    MIN_TRADE_USDC: float = 0.5
    MAX_TRADE_PCT: float = 0.25
    MIN_RESERVE_USDC: float = 0.5

    # --- Perp Sizing ---
    MIN_PERP_SIZE_USD: float = 1.0
    MAX_PERP_SIZE_USD: float = 50.0
    PERP_SIZE_PCT: float = 0.5
    DEFAULT_LEVERAGE: float = 2.0
    MAX_LEVERAGE: float = 5.0

    # --- Collateral Deposits ---
    DEPOSIT_THRESHOLD_USDC: float = 5.0
    DEPOSIT_PCT: float = 0.3
    MAX_DEPOSIT_USDC: float = 20.0
    MAX_DEPOSIT_BALANCE_PCT: float = 0.5

    # --- Position Exits (fraction of free collateral) ---
    TAKE_PROFIT_PCT: float = 0.08
    STOP_LOSS_PCT: float = 0.10

    # --- Anti-Churn ---
    MIN_HOLD_SECONDS: int = 1800
    COOLDOWN_SECONDS: int = 900
    SPREAD_TOLERANCE_PCT: float = 0.005

    # --- State ---
    STATE_FILE: str = "logs/agent-state.json"
    DASHBOARD_FILE: str = "docs/data.json"
    PRICE_HISTORY_LIMIT: int = 200
    TRADE_HISTORY_LIMIT: int = 500
    BALANCE_HISTORY_LIMIT: int = 200
    DASHBOARD_TAIL: int = 50

    # --- Perp Venue Circuit ---
    VENUE_FAILURE_THRESHOLD: int = 3
    VENUE_RETRY_SECONDS: int = 300

    # --- Paper Backend ---
    BACKEND: str = "paper"
    PAPER_AGENT_BALANCE: float = 10.0
    PAPER_TREASURY_BALANCE: float = 10.0
    PAPER_SPREAD_PCT: float = 0.001
    PAPER_CONFIRMATIONS: int = 2
    PAPER_CONFIRM_INTERVAL_SECONDS: float = 0.5
    PAPER_CONFIRM_TIMEOUT_SECONDS: float = 30.0

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = {"env_prefix": "", "case_sensitive": True}


class ConfigurationError(Exception):
    """Settings cannot produce a runnable agent."""


SUPPORTED_BACKENDS = ("paper",)


def validate_settings(settings: Settings) -> None:
    if settings.BACKEND not in SUPPORTED_BACKENDS:
        raise ConfigurationError(
            f"Unsupported BACKEND {settings.BACKEND!r}; expected one of {SUPPORTED_BACKENDS}"
        )
    if settings.MAX_CYCLES < 1:
        raise ConfigurationError("MAX_CYCLES must be at least 1")
    if settings.MIN_PERP_SIZE_USD > settings.MAX_PERP_SIZE_USD:
        raise ConfigurationError("MIN_PERP_SIZE_USD exceeds MAX_PERP_SIZE_USD")
    if not 1.0 <= settings.DEFAULT_LEVERAGE <= settings.MAX_LEVERAGE:
        raise ConfigurationError("DEFAULT_LEVERAGE must be within [1, MAX_LEVERAGE]")
