"""Cached access to pool, market, wallet and price data."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from ..config.settings import CacheConfig, get_app_config
from ..datalake.schemas import MarketSnapshot, MarketStatistics, PoolCandidate, PoolKeys, TokenAccount
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.cache import ReadThroughCache, cache_key
from ..utils.constants import AMM_AUTHORITY_SEED, RAYDIUM_LIQUIDITY_PROGRAM_ID_V4
from ..utils.errors import MalformedAccountData, UpstreamUnavailable
from .interfaces import ChainAccountReader
from .layouts import (
    MINIMAL_MARKET_LENGTH,
    MINIMAL_MARKET_OFFSET,
    decode_market_state,
    decode_minimal_market,
    decode_token_account,
)
from .pricing import DexScreenerPriceSource, PriceOracle

MARKET_BATCH_SIZE = 100
MAX_MARKET_NONCE = 100


def _market_authority(market_id: Pubkey, market_program_id: Pubkey) -> Pubkey:
    for nonce in range(MAX_MARKET_NONCE):
        seeds = [bytes(market_id), nonce.to_bytes(8, "little")]
        try:
            return Pubkey.create_program_address(seeds, market_program_id)
        except Exception:  # noqa: BLE001 - seeds landing on the curve are rejected
            continue
    raise MalformedAccountData("market_authority", f"no valid nonce for market {market_id}")


def derive_pool_keys(
    candidate: PoolCandidate,
    market: MarketSnapshot,
    program_id: str = RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
) -> PoolKeys:
    """Pure derivation of the Raydium v4 key-set for ``candidate``."""

    if market.market_id != candidate.market_id:
        raise MalformedAccountData(
            "pool_keys", f"market {market.market_id} does not belong to pool {candidate.pool_id}"
        )
    try:
        program = Pubkey.from_string(program_id)
        market_pubkey = Pubkey.from_string(candidate.market_id)
        market_program = Pubkey.from_string(candidate.market_program_id)
    except ValueError as exc:
        raise MalformedAccountData("pool_keys", str(exc)) from exc
    authority, _ = Pubkey.find_program_address([AMM_AUTHORITY_SEED], program)
    return PoolKeys(
        id=candidate.pool_id,
        base_mint=candidate.base_mint,
        quote_mint=candidate.quote_mint,
        lp_mint=candidate.lp_mint,
        base_decimals=candidate.base_decimals,
        quote_decimals=candidate.quote_decimals,
        lp_decimals=5,
        version=4,
        program_id=program_id,
        authority=str(authority),
        open_orders=candidate.open_orders,
        target_orders=candidate.target_orders,
        base_vault=candidate.base_vault,
        quote_vault=candidate.quote_vault,
        withdraw_queue=candidate.withdraw_queue,
        lp_vault=candidate.lp_vault,
        market_version=3,
        market_program_id=candidate.market_program_id,
        market_id=candidate.market_id,
        market_authority=str(_market_authority(market_pubkey, market_program)),
        market_base_vault=candidate.base_vault,
        market_quote_vault=candidate.quote_vault,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
    )


def _chunks(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class MarketDataGateway:
    """Read-through facade over the chain reader, price oracle and cache."""

    def __init__(
        self,
        reader: ChainAccountReader,
        cache: ReadThroughCache,
        oracle: PriceOracle,
        *,
        statistics_source: Optional[DexScreenerPriceSource] = None,
        config: Optional[CacheConfig] = None,
        program_id: str = RAYDIUM_LIQUIDITY_PROGRAM_ID_V4,
    ) -> None:
        self._reader = reader
        self._cache = cache
        self._oracle = oracle
        self._statistics_source = statistics_source
        self._config = config or get_app_config().cache
        self._program_id = program_id
        self._logger = get_logger(__name__)

    @property
    def cache(self) -> ReadThroughCache:
        return self._cache

    @property
    def reader(self) -> ChainAccountReader:
        return self._reader

    def get_pool_keys(self, pool_id: str, candidate: PoolCandidate, market: MarketSnapshot) -> PoolKeys:
        key = cache_key("pool", pool_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        if candidate.pool_id != pool_id:
            raise MalformedAccountData("pool_keys", f"candidate {candidate.pool_id} is not pool {pool_id}")
        keys = derive_pool_keys(candidate, market, self._program_id)
        self._cache.set(key, keys, self._config.default_ttl_seconds)
        return keys

    async def get_market_snapshot(self, market_id: str) -> MarketSnapshot:
        async def load() -> MarketSnapshot:
            data = await self._reader.get_account_info(
                market_id, data_slice=(MINIMAL_MARKET_OFFSET, MINIMAL_MARKET_LENGTH)
            )
            if data is None:
                raise UpstreamUnavailable("market", f"no account data for {market_id}")
            return decode_minimal_market(market_id, data)

        return await self._cache.get_or_load(
            cache_key("market", market_id), load, self._config.default_ttl_seconds
        )

    async def batch_get_market_snapshots(self, market_ids: Iterable[str]) -> Dict[str, MarketSnapshot]:
        """Fetch many markets; failed batches and undecodable accounts are skipped."""

        results: Dict[str, MarketSnapshot] = {}
        uncached: List[str] = []
        for market_id in dict.fromkeys(market_ids):
            cached = self._cache.get(cache_key("market", market_id))
            if cached is not None:
                results[market_id] = cached
            else:
                uncached.append(market_id)

        for batch in _chunks(uncached, MARKET_BATCH_SIZE):
            try:
                payloads = await self._reader.get_multiple_accounts(batch)
            except UpstreamUnavailable as exc:
                self._logger.error("Market batch of %d failed: %s", len(batch), exc)
                METRICS.increment("market_batch_failures")
                continue
            for market_id, data in zip(batch, payloads):
                if data is None:
                    self._logger.warning("Market %s returned no data", market_id)
                    continue
                try:
                    snapshot = decode_market_state(market_id, data)
                except MalformedAccountData as exc:
                    self._logger.warning("Failed to decode market %s: %s", market_id, exc)
                    continue
                self._cache.set(cache_key("market", market_id), snapshot, self._config.default_ttl_seconds)
                results[market_id] = snapshot
        return results

    async def get_token_accounts(self, owner: str) -> List[TokenAccount]:
        async def load() -> List[TokenAccount]:
            accounts: List[TokenAccount] = []
            for pubkey, data in await self._reader.get_token_accounts_by_owner(owner):
                try:
                    accounts.append(decode_token_account(pubkey, data))
                except MalformedAccountData as exc:
                    self._logger.warning("Skipping token account %s: %s", pubkey, exc)
            return accounts

        return await self._cache.get_or_load(
            cache_key("token_accounts", owner), load, self._config.fast_ttl_seconds
        )

    async def get_token_price(self, mint: str) -> Optional[float]:
        return await self._oracle.get_price(mint)

    async def refresh_pool_reserves(self, candidate: PoolCandidate) -> PoolCandidate:
        """Return a new candidate carrying the current vault balances."""

        payloads = await self._reader.get_multiple_accounts([candidate.base_vault, candidate.quote_vault])
        if len(payloads) != 2 or payloads[0] is None or payloads[1] is None:
            raise UpstreamUnavailable("vaults", f"missing vault data for pool {candidate.pool_id}")
        base = decode_token_account(candidate.base_vault, payloads[0])
        quote = decode_token_account(candidate.quote_vault, payloads[1])
        return candidate.with_reserves(base.amount, quote.amount)

    async def get_vault_balances(self, base_vault: str, quote_vault: str) -> Tuple[Optional[float], Optional[float]]:
        base, quote = await asyncio.gather(
            self._reader.get_token_account_balance(base_vault),
            self._reader.get_token_account_balance(quote_vault),
        )
        return base, quote

    async def get_market_statistics(self, mint: str) -> MarketStatistics:
        """Horizon price/volume/txn statistics; all zero when unavailable."""

        key = cache_key("statistics", mint)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        if self._statistics_source is None:
            return MarketStatistics()
        try:
            stats = await self._statistics_source.fetch_statistics(mint)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("Market statistics unavailable for %s: %s", mint, exc)
            return MarketStatistics()
        if stats is None:
            return MarketStatistics()
        liquidity_key = cache_key("liquidity", mint)
        previous = self._cache.get(liquidity_key)
        if stats.liquidity_usd is not None:
            self._cache.set(liquidity_key, stats.liquidity_usd, self._config.slow_ttl_seconds)
        stats = replace(stats, previous_liquidity=previous)
        self._cache.set(key, stats, self._config.statistics_ttl_seconds)
        return stats

    def clear_market_cache(self, market_ids: Optional[Iterable[str]] = None) -> None:
        if market_ids is None:
            self._cache.clear("market")
            return
        for market_id in market_ids:
            self._cache.delete(cache_key("market", market_id))

    def clear_pool_cache(self, pool_ids: Optional[Iterable[str]] = None) -> None:
        if pool_ids is None:
            self._cache.clear("pool")
            return
        for pool_id in pool_ids:
            self._cache.delete(cache_key("pool", pool_id))

    def clear_liquidity_cache(self, mints: Optional[Iterable[str]] = None) -> None:
        if mints is None:
            self._cache.clear("liquidity")
            return
        for mint in mints:
            self._cache.delete(cache_key("liquidity", mint))


__all__ = ["MARKET_BATCH_SIZE", "MarketDataGateway", "derive_pool_keys"]
