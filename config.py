"""
Market Movers Scanner — Configuration
All tunable parameters in one place.
"""

import os
from dataclasses import dataclass, field
from typing import List

VALID_WINDOWS = (1, 3, 6, 12, 24)


@dataclass
class ExchangeConfig:
    coinbase_base_url: str = "https://api.exchange.coinbase.com"
    coincap_assets_url: str = "https://api.coincap.io/v2/assets"
    coincap_limit: int = 2000
    request_timeout_sec: float = 15.0


@dataclass
class PipelineConfig:
    concurrency: int = 8                # In-flight requests per fan-out stage
    pool_delay_sec: float = 0.06        # Pause per worker between claims
    candle_granularity: int = 300       # 5-minute candles (seconds)
    window_margin_minutes: int = 5      # Extra lookback for window percent
    confidence_lookback_minutes: int = 65
    min_last_price: float = 1.0
    top_n: int = 30
    quote_currencies: List[str] = field(default_factory=lambda: ["USD", "USDT"])


@dataclass
class FilterConfig:
    window_hours: int = 24              # One of VALID_WINDOWS
    min_vol_usd: float = 1_000_000.0
    min_pct: float = 1.0


@dataclass
class ScheduleConfig:
    refresh_interval_sec: int = 300     # Next run after a successful one
    retry_delay_sec: int = 60           # Next run after a failed one


@dataclass
class DashboardConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


@dataclass
class ScannerConfig:
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    log_level: str = "INFO"
    log_path: str = "./data/scanner.log"

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.exchange.coinbase_base_url = os.getenv(
            "COINBASE_BASE_URL", config.exchange.coinbase_base_url
        ).rstrip("/")
        config.exchange.coincap_assets_url = os.getenv(
            "COINCAP_ASSETS_URL", config.exchange.coincap_assets_url
        )
        config.exchange.request_timeout_sec = float(
            os.getenv("REQUEST_TIMEOUT_SEC", config.exchange.request_timeout_sec)
        )
        config.pipeline.concurrency = int(os.getenv("POOL_CONCURRENCY", config.pipeline.concurrency))
        config.filters.window_hours = int(os.getenv("WINDOW_HOURS", config.filters.window_hours))
        config.filters.min_vol_usd = float(os.getenv("MIN_VOL_USD", config.filters.min_vol_usd))
        config.filters.min_pct = float(os.getenv("MIN_PCT", config.filters.min_pct))
        config.schedule.refresh_interval_sec = int(
            os.getenv("REFRESH_INTERVAL_SEC", config.schedule.refresh_interval_sec)
        )
        config.schedule.retry_delay_sec = int(
            os.getenv("RETRY_DELAY_SEC", config.schedule.retry_delay_sec)
        )
        config.dashboard.host = os.getenv("DASHBOARD_HOST", config.dashboard.host)
        config.dashboard.port = int(os.getenv("DASHBOARD_PORT", config.dashboard.port))
        config.dashboard.enabled = os.getenv("DASHBOARD_ENABLED", "true").lower() == "true"
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        config.log_path = os.getenv("LOG_PATH", config.log_path)
        return config
