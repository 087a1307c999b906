"""Entrypoint for the Raydium pool sniper."""

from __future__ import annotations

import argparse
import asyncio
import os
import time
from contextlib import contextmanager
from typing import Awaitable, Callable, List, Optional, Sequence

import requests

from .analysis.security import MintSafetyChecker
from .analysis.sentiment import SentimentAnalyzer
from .config.settings import AppConfig, AppMode, MonitoringConfig, load_app_config
from .datalake.schemas import TokenAccount
from .datalake.storage import ProfitLedger
from .execution.positions import PositionBook, TradeAttemptRegistry
from .execution.solana_client import ProgramSubscriber, SolanaRpc
from .execution.trader import ExecutionCore
from .execution.transaction_builder import RaydiumSwapBuilder
from .execution.wallet import Wallet, load_wallet
from .ingestion.allow_list import SnipeList
from .ingestion.event_listener import PoolEventIngestion
from .ingestion.interfaces import ChainEventSource
from .ingestion.market_data import MarketDataGateway
from .ingestion.pricing import BirdeyePriceSource, DexScreenerPriceSource, PriceOracle
from .monitoring import bootstrap_observability
from .monitoring.logger import configure_logging, get_logger
from .monitoring.metrics import METRICS
from .strategy.pipeline import DecisionPipeline
from .strategy.risk import SessionRiskState
from .utils.cache import ReadThroughCache, cache_key
from .utils.constants import QUOTE_TOKENS
from .utils.errors import ConfigurationMissing, SniperError

logger = get_logger(__name__)


@contextmanager
def performance_monitor(operation_name: str):
    """Record the wall time of a periodic job."""
    start_time = time.time()
    try:
        yield
    finally:
        METRICS.observe(f"bot.{operation_name}.duration_seconds", time.time() - start_time)
        METRICS.increment(f"bot.{operation_name}.calls_total")


class SniperBot:
    """Wires the collaborators together and owns the periodic jobs."""

    def __init__(
        self,
        config: AppConfig,
        *,
        dry_run: bool = False,
        wallet: Optional[Wallet] = None,
        rpc: Optional[SolanaRpc] = None,
        source: Optional[ChainEventSource] = None,
    ) -> None:
        self._config = config
        self._dry_run = dry_run
        self._wallet = wallet or load_wallet(config.wallet)
        self._rpc = rpc or SolanaRpc(config.rpc)
        self._source = source or ProgramSubscriber(config.rpc)
        quote = config.trading.quote_mint
        if quote is None:
            raise ConfigurationMissing(["trading.quote_mint"])
        self._quote_symbol = quote.value
        self._quote_mint = QUOTE_TOKENS[quote.value][0]

        self.cache = ReadThroughCache(config.cache.default_ttl_seconds)
        session = requests.Session()
        dexscreener = DexScreenerPriceSource(config.data_sources, session)
        birdeye = BirdeyePriceSource(config.data_sources, session)
        oracle = PriceOracle([dexscreener, birdeye], self.cache, ttl=config.data_sources.cache_ttl_seconds)
        self.gateway = MarketDataGateway(
            self._rpc, self.cache, oracle, statistics_source=dexscreener, config=config.cache
        )
        self.session = SessionRiskState(config.risk, config.trading_hours)
        self.snipe_list = SnipeList(config.snipe_list)
        self.attempts = TradeAttemptRegistry()
        self.positions = PositionBook()
        self.pipeline = DecisionPipeline(
            attempts=self.attempts,
            session=self.session,
            gateway=self.gateway,
            security=MintSafetyChecker(self._rpc, self.cache, config.security, ttl=config.cache.slow_ttl_seconds),
            sentiment=SentimentAnalyzer(self._rpc, self.cache, config.sentiment, ttl=config.cache.slow_ttl_seconds),
            snipe_list=self.snipe_list,
            config=config,
        )
        self.ledger = ProfitLedger(config.storage.profit_file)
        self.builder = RaydiumSwapBuilder(self._wallet, compute_unit_limit=config.execution.compute_unit_limit)
        self.core: Optional[ExecutionCore] = None
        self.ingestion: Optional[PoolEventIngestion] = None
        self._timers: List[asyncio.Task] = []

    def _log_settings(self) -> None:
        trading = self._config.trading
        logger.info(
            "Starting sniper",
            extra={
                "wallet": self._wallet.address,
                "mode": "dry_run" if self._dry_run else self._config.mode.active.value,
                "quote": self._quote_symbol,
                "quote_amount": trading.quote_amount,
                "min_pool_size": trading.min_pool_size,
                "take_profit": trading.take_profit,
                "stop_loss": trading.stop_loss,
                "auto_sell": trading.auto_sell,
                "risk_level": self._config.risk.risk_level.value,
                "max_concurrent_transactions": self._config.risk.max_concurrent_transactions,
                "snipe_list": self.snipe_list.enabled,
                "sentiment": self._config.sentiment.enabled,
                "price_impact": self._config.price_impact.enabled,
            },
        )

    async def _wallet_accounts(self) -> List[TokenAccount]:
        self.cache.delete(cache_key("token_accounts", self._wallet.address))
        return await self.gateway.get_token_accounts(self._wallet.address)

    async def start(self) -> None:
        """Load wallet state, build the execution core and schedule the timers."""

        self.ledger.initialize()
        self._log_settings()
        if self.snipe_list.enabled:
            await self.snipe_list.refresh()

        accounts = await self._wallet_accounts()
        quote_account = next((account for account in accounts if account.mint == self._quote_mint), None)
        if quote_account is None:
            raise SniperError(f"No {self._quote_symbol} token account found in wallet {self._wallet.address}")

        self.core = ExecutionCore(
            owner=self._wallet.address,
            quote_token_account=quote_account.pubkey,
            gateway=self.gateway,
            submitter=self._rpc,
            builder=self.builder,
            session=self.session,
            ledger=self.ledger,
            pipeline=self.pipeline,
            attempts=self.attempts,
            positions=self.positions,
            config=self._config,
            dry_run=self._dry_run,
        )
        for account in accounts:
            self.core.adopt_token_account(account)
        logger.info("Loaded %d existing token accounts", len(self.positions))

        self.ingestion = PoolEventIngestion(
            source=self._source, pipeline=self.pipeline, core=self.core, config=self._config
        )

        monitoring = self._config.monitoring
        self._schedule("token_refresh", monitoring.token_refresh_interval_seconds, self.refresh_token_accounts)
        self._schedule("day_check", monitoring.day_check_interval_seconds, self.check_day)
        self._schedule("status", monitoring.status_interval_seconds, self.log_status)
        self._schedule("cache_sweep", self._config.cache.sweep_interval_seconds, self.sweep_cache)
        if self.snipe_list.enabled:
            self._schedule("snipe_list", self._config.snipe_list.refresh_interval_seconds, self.snipe_list.refresh)
        if self._config.trading.auto_sell:
            self._schedule("auto_sell", self._config.trading.auto_sell_delay_seconds, self.core.auto_sell_sweep)

    def _schedule(self, name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        self._timers.append(asyncio.create_task(self._every(name, interval, job), name=name))

    async def _every(self, name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                with performance_monitor(name):
                    await job()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Periodic job %s failed: %s", name, exc, extra={"job": name})

    async def refresh_token_accounts(self) -> int:
        if self.core is None:
            raise SniperError("Token accounts refreshed before start")
        adopted = 0
        for account in await self._wallet_accounts():
            if self.core.adopt_token_account(account) is not None:
                adopted += 1
        return adopted

    async def check_day(self) -> bool:
        return self.session.check_day_boundary()

    async def sweep_cache(self) -> int:
        return self.cache.sweep()

    async def log_status(self) -> None:
        logger.info(
            "Status",
            extra={
                "session": self.session.snapshot(),
                "positions": len(self.positions),
                "in_flight": len(self.attempts),
                "cache_entries": len(self.cache),
                "metrics": METRICS.snapshot(),
            },
        )

    async def run(self) -> None:
        try:
            await self.start()
            if self.ingestion is None:
                raise SniperError("Pool ingestion was not started")
            await self.ingestion.run()
        finally:
            await self.stop()

    async def stop(self) -> None:
        for task in self._timers:
            task.cancel()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()
        if self.ingestion is not None:
            await self.ingestion.wait_idle()
        if self.core is not None:
            await self.core.wait_for_confirmations()
        await self._rpc.close()
        logger.info("Sniper stopped")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Snipe newly created Raydium liquidity pools")
    parser.add_argument("--dry-run", action="store_true", default=False)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a TOML profile file (overrides APP_CONFIG_FILE).",
    )
    args = parser.parse_args(argv)
    if args.config:
        os.environ["APP_CONFIG_FILE"] = args.config

    configure_logging(MonitoringConfig())
    try:
        config = load_app_config()
    except ConfigurationMissing as exc:
        logger.error("Cannot start: %s", exc, extra={"options": exc.options})
        return 1
    bootstrap_observability(config)

    dry_run = args.dry_run or config.mode.active == AppMode.DRY_RUN
    try:
        bot = SniperBot(config, dry_run=dry_run)
        asyncio.run(bot.run())
    except ConfigurationMissing as exc:
        logger.error("Cannot start: %s", exc, extra={"options": exc.options})
        return 1
    except SniperError as exc:
        logger.error("Sniper stopped: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
