"""Turns program-account notifications into pool buys and market pre-registration."""

from __future__ import annotations

import asyncio
import time
from typing import Optional, Set

from ..config.settings import AppConfig, get_app_config
from ..datalake.schemas import AccountEvent, PoolCandidate
from ..execution.trader import ExecutionCore
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..strategy.pipeline import DecisionPipeline
from ..utils.constants import OPENBOOK_PROGRAM_ID, QUOTE_TOKENS, RAYDIUM_LIQUIDITY_PROGRAM_ID_V4
from ..utils.errors import MalformedAccountData
from .interfaces import ChainEventSource
from .layouts import (
    LIQUIDITY_STATE_V4_SIZE,
    MARKET_STATE_V3_SIZE,
    POOL_STATUS_SWAP,
    decode_market_state,
    decode_pool_state,
    pool_open_time,
    pool_status,
)


class PoolEventIngestion:
    """Subscribes to the AMM and OpenBook programs and dispatches new accounts.

    Pools opened before ``started_at`` are ignored. Each account id is handled
    once; the id is recorded before the account is decoded.
    """

    def __init__(
        self,
        *,
        source: ChainEventSource,
        pipeline: DecisionPipeline,
        core: ExecutionCore,
        config: Optional[AppConfig] = None,
        started_at: Optional[int] = None,
        pool_program_id: str = RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
        market_program_id: str = OPENBOOK_PROGRAM_ID,
    ) -> None:
        self._source = source
        self._pipeline = pipeline
        self._core = core
        self._config = config or get_app_config()
        quote = self._config.trading.quote_mint
        self._quote_mint = QUOTE_TOKENS[quote.value][0] if quote is not None else None
        self._started_at = int(time.time()) if started_at is None else started_at
        self._pool_program_id = pool_program_id
        self._market_program_id = market_program_id
        self._seen_pools: Set[str] = set()
        self._seen_markets: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def seen_pools(self) -> Set[str]:
        return self._seen_pools

    @property
    def seen_markets(self) -> Set[str]:
        return self._seen_markets

    async def run(self) -> None:
        self._logger.info(
            "Listening for pools quoted in %s", self._quote_mint, extra={"started_at": self._started_at}
        )
        await asyncio.gather(
            self._source.subscribe(self._pool_program_id, self.on_pool_event),
            self._source.subscribe(self._market_program_id, self.on_market_event),
        )

    async def wait_idle(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def on_pool_event(self, event: AccountEvent) -> None:
        pool_id = event.account_id
        data = event.data
        if pool_id in self._seen_pools or len(data) != LIQUIDITY_STATE_V4_SIZE:
            return
        try:
            if pool_status(data) != POOL_STATUS_SWAP or pool_open_time(data) <= self._started_at:
                return
            self._seen_pools.add(pool_id)
            candidate = decode_pool_state(pool_id, data)
        except MalformedAccountData as exc:
            METRICS.increment("malformed_accounts.pool")
            self._logger.warning("Skipping undecodable pool %s: %s", pool_id, exc)
            return
        if candidate.quote_mint != self._quote_mint or candidate.market_program_id != self._market_program_id:
            return

        METRICS.increment("pools_detected")
        task = asyncio.create_task(self._process_pool(candidate))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_pool(self, candidate: PoolCandidate) -> None:
        with correlation_scope(candidate.base_mint):
            try:
                result = await self._pipeline.evaluate_buy(candidate)
                if not result.approved:
                    return
                await self._core.buy(result.context.get("candidate", candidate))
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "Failed to process pool %s: %s", candidate.pool_id, exc, extra={"mint": candidate.base_mint}
                )

    async def on_market_event(self, event: AccountEvent) -> None:
        market_id = event.account_id
        data = event.data
        if market_id in self._seen_markets or len(data) != MARKET_STATE_V3_SIZE:
            return
        self._seen_markets.add(market_id)
        if not self._pipeline.evaluate_admission().approved:
            return
        try:
            market = decode_market_state(market_id, data)
        except MalformedAccountData as exc:
            METRICS.increment("malformed_accounts.market")
            self._logger.warning("Skipping undecodable market %s: %s", market_id, exc)
            return
        if market.quote_mint != self._quote_mint:
            return
        if self._core.prepare_position(market) is not None:
            self._logger.debug("Registered market %s for %s", market_id, market.base_mint)


__all__ = ["PoolEventIngestion"]
