"""Token price lookups from public HTTP APIs."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import requests
from cachetools import TTLCache

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import HorizonMetrics, MarketStatistics, TxnCounts
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.cache import ReadThroughCache, TTL_SLOW, cache_key
from .interfaces import PriceSource

_MISS = object()


def _as_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result


class _HttpPriceSource(ABC):
    """Shared plumbing: a requests session, a per-source TTL cache, thread offload.

    Misses are cached too, so an unlisted mint costs one request per TTL.
    """

    name = "http"

    def __init__(
        self,
        config: Optional[DataSourceConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._session = session or requests.Session()
        self._cache: TTLCache[str, Optional[float]] = TTLCache(
            maxsize=1024, ttl=max(self._config.cache_ttl_seconds, 1)
        )
        self._logger = get_logger(__name__)

    @abstractmethod
    def _request(self, mint: str) -> Optional[float]:
        """Blocking lookup of the quote-denominated price of ``mint``."""

    def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = self._session.get(url, timeout=self._config.http_timeout, **kwargs)
        response.raise_for_status()
        return response.json()

    async def resolve(self, mint: str) -> Optional[float]:
        cached = self._cache.get(mint, _MISS)
        if cached is not _MISS:
            return cached
        price = await asyncio.to_thread(self._request, mint)
        self._cache[mint] = price
        return price


class DexScreenerPriceSource(_HttpPriceSource):
    """Canonical source: ``priceNative`` of the first Solana pair for the mint."""

    name = "dexscreener"

    def _pair(self, mint: str) -> Optional[Dict[str, Any]]:
        url = f"{str(self._config.dexscreener_url).rstrip('/')}/{mint}"
        payload = self._get_json(url)
        pairs = payload.get("pairs") if isinstance(payload, dict) else None
        for pair in pairs or []:
            if isinstance(pair, dict) and pair.get("chainId") == "solana":
                return pair
        return None

    def _request(self, mint: str) -> Optional[float]:
        pair = self._pair(mint)
        if pair is None:
            return None
        return _as_float(pair.get("priceNative"))

    async def fetch_statistics(self, mint: str) -> Optional[MarketStatistics]:
        pair = await asyncio.to_thread(self._pair, mint)
        if pair is None:
            return None
        return parse_pair_statistics(pair)


class BirdeyePriceSource(_HttpPriceSource):
    name = "birdeye"

    def _request(self, mint: str) -> Optional[float]:
        if not self._config.birdeye_api_key:
            return None
        payload = self._get_json(
            str(self._config.birdeye_url),
            params={"address": mint},
            headers={"X-API-KEY": self._config.birdeye_api_key},
        )
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return None
        return _as_float(data.get("value"))


def _horizons(payload: Any) -> HorizonMetrics:
    if not isinstance(payload, dict):
        return HorizonMetrics()
    return HorizonMetrics(
        m5=_as_float(payload.get("m5")) or 0.0,
        h1=_as_float(payload.get("h1")) or 0.0,
        h6=_as_float(payload.get("h6")) or 0.0,
        h24=_as_float(payload.get("h24")) or 0.0,
    )


def _txns(payload: Any) -> TxnCounts:
    if not isinstance(payload, dict):
        return TxnCounts()
    return TxnCounts(buys=int(payload.get("buys") or 0), sells=int(payload.get("sells") or 0))


def parse_pair_statistics(pair: Dict[str, Any]) -> MarketStatistics:
    txns = pair.get("txns") if isinstance(pair.get("txns"), dict) else {}
    liquidity = pair.get("liquidity") if isinstance(pair.get("liquidity"), dict) else {}
    return MarketStatistics(
        price_change=_horizons(pair.get("priceChange")),
        volume=_horizons(pair.get("volume")),
        txns_m5=_txns(txns.get("m5")),
        txns_h1=_txns(txns.get("h1")),
        liquidity_usd=_as_float(liquidity.get("usd")),
    )


class PriceOracle:
    """Queries every source concurrently and resolves by fixed preference.

    The first source in ``sources`` is canonical: its value wins whenever it
    succeeded with a price, regardless of which lookup finished first.
    """

    def __init__(
        self,
        sources: Sequence[PriceSource],
        cache: ReadThroughCache,
        *,
        ttl: float = TTL_SLOW,
    ) -> None:
        self._sources = list(sources)
        self._cache = cache
        self._ttl = ttl
        self._logger = get_logger(__name__)

    @property
    def sources(self) -> List[PriceSource]:
        return list(self._sources)

    async def get_price(self, mint: str) -> Optional[float]:
        key = cache_key("price", mint)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        results = await asyncio.gather(
            *(source.resolve(mint) for source in self._sources),
            return_exceptions=True,
        )
        for source, result in zip(self._sources, results):
            if isinstance(result, BaseException):
                METRICS.increment(f"price_source_errors.{source.name}")
                self._logger.warning("Price lookup via %s failed for %s: %s", source.name, mint, result)
                continue
            if result is not None:
                self._cache.set(key, result, self._ttl)
                return result
        self._logger.debug("No price available for %s", mint)
        return None


__all__ = [
    "BirdeyePriceSource",
    "DexScreenerPriceSource",
    "PriceOracle",
    "parse_pair_statistics",
]
