"""Configuration management for charity-bot."""
import os
from pydantic import BaseModel

DEFAULT_ASSET_CODES = "USD=ZUSD,USD;BTC=XXBT,XBT,BTC;ETH=XETH,ETH"


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


class Config(BaseModel):
    """Application configuration loaded from environment variables."""
    USE_MOCK_KRAKEN: bool = True
    KRAKEN_API_KEY: str = ""
    KRAKEN_API_SECRET: str = ""
    KRAKEN_API_URL: str = "https://api.kraken.com"
    ALLOW_REAL_TRADING: bool = False
    TRADE_CONFIRMATION_REQUIRED: bool = True
    EMERGENCY_STOP: bool = False
    MAX_POSITION_SIZE_USD: float = 20.0
    MAX_DAILY_LOSS_BOT_A_USD: float = 100.0
    MAX_DAILY_LOSS_BOT_B_USD: float = 50.0
    MAX_OPEN_POSITIONS_BOT_A: int = 3
    MAX_OPEN_POSITIONS_BOT_B: int = 2
    ASSET_CODES: str = DEFAULT_ASSET_CODES
    BOT_A_INTERVAL_SECONDS: int = 300
    BOT_B_INTERVAL_SECONDS: int = 900
    SENTIMENT_INTERVAL_SECONDS: int = 3600
    MARKET_DATA_INTERVAL_SECONDS: int = 120
    FEAR_GREED_MIN_INTERVAL_SECONDS: int = 900
    BALANCE_CACHE_TTL: float = 15.0
    PRIVATE_CALL_INTERVAL: float = 1.0
    HTTP_TIMEOUT: float = 10.0
    SENTIMENT_RETENTION: int = 1000
    DASHBOARD_PORT: int = 3000
    DB_PATH: str = "data/charity_bot.db"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            USE_MOCK_KRAKEN=_env_bool("USE_MOCK_KRAKEN", True),
            KRAKEN_API_KEY=os.getenv("KRAKEN_API_KEY", ""),
            KRAKEN_API_SECRET=os.getenv("KRAKEN_API_SECRET", ""),
            KRAKEN_API_URL=os.getenv("KRAKEN_API_URL", "https://api.kraken.com"),
            ALLOW_REAL_TRADING=_env_bool("ALLOW_REAL_TRADING", False),
            TRADE_CONFIRMATION_REQUIRED=_env_bool("TRADE_CONFIRMATION_REQUIRED", True),
            EMERGENCY_STOP=_env_bool("EMERGENCY_STOP", False),
            MAX_POSITION_SIZE_USD=float(os.getenv("MAX_POSITION_SIZE_USD", "20")),
            MAX_DAILY_LOSS_BOT_A_USD=float(os.getenv("MAX_DAILY_LOSS_BOT_A_USD", "100")),
            MAX_DAILY_LOSS_BOT_B_USD=float(os.getenv("MAX_DAILY_LOSS_BOT_B_USD", "50")),
            MAX_OPEN_POSITIONS_BOT_A=int(os.getenv("MAX_OPEN_POSITIONS_BOT_A", "3")),
            MAX_OPEN_POSITIONS_BOT_B=int(os.getenv("MAX_OPEN_POSITIONS_BOT_B", "2")),
            ASSET_CODES=os.getenv("ASSET_CODES", DEFAULT_ASSET_CODES),
            BOT_A_INTERVAL_SECONDS=int(os.getenv("BOT_A_INTERVAL_SECONDS", "300")),
            BOT_B_INTERVAL_SECONDS=int(os.getenv("BOT_B_INTERVAL_SECONDS", "900")),
            SENTIMENT_INTERVAL_SECONDS=int(os.getenv("SENTIMENT_INTERVAL_SECONDS", "3600")),
            MARKET_DATA_INTERVAL_SECONDS=int(os.getenv("MARKET_DATA_INTERVAL_SECONDS", "120")),
            FEAR_GREED_MIN_INTERVAL_SECONDS=int(os.getenv("FEAR_GREED_MIN_INTERVAL_SECONDS", "900")),
            BALANCE_CACHE_TTL=float(os.getenv("BALANCE_CACHE_TTL", "15")),
            PRIVATE_CALL_INTERVAL=float(os.getenv("PRIVATE_CALL_INTERVAL", "1.0")),
            HTTP_TIMEOUT=float(os.getenv("HTTP_TIMEOUT", "10")),
            SENTIMENT_RETENTION=int(os.getenv("SENTIMENT_RETENTION", "1000")),
            DASHBOARD_PORT=int(os.getenv("DASHBOARD_PORT", "3000")),
            DB_PATH=os.getenv("DB_PATH", "data/charity_bot.db"),
        )

    @property
    def asset_code_table(self) -> dict[str, list[str]]:
        """Parse ASSET_CODES ("USD=ZUSD,USD;BTC=XXBT,XBT,BTC") into a priority table."""
        table: dict[str, list[str]] = {}
        for entry in self.ASSET_CODES.split(";"):
            if "=" not in entry:
                continue
            asset, codes = entry.split("=", 1)
            parsed = [c.strip() for c in codes.split(",") if c.strip()]
            if asset.strip() and parsed:
                table[asset.strip().upper()] = parsed
        return table

    @property
    def has_credentials(self) -> bool:
        return bool(self.KRAKEN_API_KEY and self.KRAKEN_API_SECRET)

    @property
    def is_live(self) -> bool:
        return not self.USE_MOCK_KRAKEN
