"""
Market Movers Scanner — Main Orchestrator.
Runs the data pipeline on a timer, keeps the latest result for the dashboard,
and handles startup/shutdown.
"""

from __future__ import annotations
import asyncio
import math
import os
import sys
import signal
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from dotenv import load_dotenv

from config import ScannerConfig, VALID_WINDOWS
from dashboard import Dashboard
from core.pipeline import DatasetLoader
from exchange.coinbase_rest import CoinbaseRestClient
from exchange.coincap_rest import CoinCapClient
from exchange.models import LoadOptions, RunCounters, RunResult

logger = logging.getLogger(__name__)


def setup_logging(config: ScannerConfig):
    """Stdout + file logging. Creates the log directory if needed."""
    os.makedirs(os.path.dirname(config.log_path) or ".", exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.log_path),
        ],
    )


class Scanner:
    """
    Drives pipeline runs and holds the state the dashboard renders.

    After a successful run the next one is scheduled `refresh_interval_sec`
    later, after a failed run `retry_delay_sec` later. A manual refresh wakes
    the loop early, but is refused while a run is in flight.
    """

    def __init__(
        self,
        config: ScannerConfig,
        coinbase: Optional[CoinbaseRestClient] = None,
        coincap: Optional[CoinCapClient] = None,
        loader: Optional[DatasetLoader] = None,
    ):
        self.config = config
        self._running = False

        self.coinbase = coinbase or CoinbaseRestClient(
            base_url=config.exchange.coinbase_base_url,
            timeout_sec=config.exchange.request_timeout_sec,
        )
        self.coincap = coincap or CoinCapClient(
            assets_url=config.exchange.coincap_assets_url,
            limit=config.exchange.coincap_limit,
            timeout_sec=config.exchange.request_timeout_sec,
        )
        self.loader = loader or DatasetLoader(self.coinbase, self.coincap, config.pipeline)

        # Active filters, changeable from the dashboard
        self.window_hours = config.filters.window_hours
        self.min_vol_usd = config.filters.min_vol_usd
        self.min_pct = config.filters.min_pct

        # Dashboard-facing state
        self.progress_pct = 0
        self.status_text = ""
        self.counters = RunCounters(vol_min=self.min_vol_usd, hours=self.window_hours)
        self.result: Optional[RunResult] = None
        self.last_error: Optional[str] = None
        self.next_run_at: Optional[datetime] = None
        self.in_flight = False

        self._wake = asyncio.Event()

    # ==================== Runs ====================

    async def run_once(self) -> Optional[RunResult]:
        """One pipeline run. Returns None on failure; never raises."""
        self.in_flight = True
        self.last_error = None
        self.counters = RunCounters(vol_min=self.min_vol_usd, hours=self.window_hours)

        try:
            options = LoadOptions(
                window_hours=self.window_hours,
                min_vol_usd=self.min_vol_usd,
                min_pct=self.min_pct,
                on_stage=self._on_stage,
                on_counters=self._on_counters,
            )
            result = await self.loader.load(options)
        except Exception as e:
            logger.error(f"[SCANNER] Run failed: {e}", exc_info=True)
            self.result = None
            self.last_error = str(e)
            self.counters = RunCounters()
            self._set_progress(0, f"Error: {e}")
            self._schedule(self.config.schedule.retry_delay_sec)
            return None
        finally:
            self.in_flight = False

        self.result = result
        self.counters.shown = len(result.rows)
        self._set_progress(100, "Done")
        self._schedule(self.config.schedule.refresh_interval_sec)
        logger.info(
            f"[SCANNER] {len(result.rows)} movers over {self.window_hours}h "
            f"(vol>={self.min_vol_usd:,.0f}). Next run in "
            f"{self.config.schedule.refresh_interval_sec}s"
        )
        return result

    def request_refresh(
        self,
        window_hours: Optional[int] = None,
        min_vol_usd: Optional[float] = None,
    ) -> bool:
        """
        Ask for an immediate run, optionally with new filters.
        Returns False (and changes nothing) while a run is in flight.
        """
        if window_hours is not None and window_hours not in VALID_WINDOWS:
            raise ValueError(f"window must be one of {VALID_WINDOWS}")
        if min_vol_usd is not None and (not math.isfinite(min_vol_usd) or min_vol_usd < 0):
            raise ValueError("min_vol must be a finite number >= 0")
        if self.in_flight:
            logger.info("[SCANNER] Refresh ignored: run in flight")
            return False

        if window_hours is not None:
            self.window_hours = window_hours
        if min_vol_usd is not None:
            self.min_vol_usd = min_vol_usd
        self._wake.set()
        return True

    def seconds_until_next_run(self) -> Optional[int]:
        if self.next_run_at is None:
            return None
        remaining = (self.next_run_at - datetime.now(timezone.utc)).total_seconds()
        return max(0, int(remaining))

    # ==================== Callbacks ====================

    def _on_stage(self, pct: int, text: str):
        self._set_progress(pct, text)
        logger.debug(f"[SCANNER] {pct:3d}% {text}")

    def _on_counters(self, counters: RunCounters):
        self.counters = counters

    def _set_progress(self, pct: int, text: str):
        self.progress_pct = max(0, min(100, pct))
        self.status_text = text

    def _schedule(self, delay_sec: int):
        self.next_run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_sec)

    # ==================== Lifecycle ====================

    async def _refresh_loop(self):
        while self._running:
            await self.run_once()
            if not self._running:
                break

            self._wake.clear()
            try:
                await asyncio.wait_for(
                    self._wake.wait(),
                    timeout=self.seconds_until_next_run() or 0,
                )
            except asyncio.TimeoutError:
                pass

    async def start(self):
        logger.info("=" * 60)
        logger.info("   MARKET MOVERS SCANNER — STARTING")
        logger.info("=" * 60)
        self._running = True
        await self._refresh_loop()

    def stop(self):
        """Let the loop exit after the current wait or run."""
        logger.info("[SHUTDOWN] Stopping scanner...")
        self._running = False
        self._wake.set()

    async def close(self):
        await self.coinbase.close()
        await self.coincap.close()
        logger.info("[SHUTDOWN] Complete.")


async def main():
    """Entry point."""
    load_dotenv()
    config = ScannerConfig.from_env()
    setup_logging(config)

    scanner = Scanner(config)
    dashboard = None
    if config.dashboard.enabled:
        dashboard = Dashboard(scanner, host=config.dashboard.host, port=config.dashboard.port)
        await dashboard.start()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}. Initiating shutdown...")
            scanner.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await scanner.start()
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await scanner.close()
        if dashboard is not None:
            await dashboard.stop()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
