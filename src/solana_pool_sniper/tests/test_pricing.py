from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from solana_pool_sniper.config.settings import DataSourceConfig
from solana_pool_sniper.ingestion.pricing import (
    BirdeyePriceSource,
    DexScreenerPriceSource,
    PriceOracle,
    parse_pair_statistics,
)
from solana_pool_sniper.monitoring.metrics import METRICS
from solana_pool_sniper.utils.cache import ReadThroughCache

MINT = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


class FakeResponse:
    def __init__(self, payload: Any) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Any:
        return self._payload


class FakeSession:
    def __init__(self, payload: Any) -> None:
        self.payload = payload
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, timeout: float, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        return FakeResponse(self.payload)


class StaticSource:
    def __init__(self, name: str, price: Optional[float], delay: float = 0.0, error: Exception | None = None) -> None:
        self.name = name
        self.price = price
        self.delay = delay
        self.error = error
        self.calls = 0

    async def resolve(self, mint: str) -> Optional[float]:
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.price


def test_oracle_prefers_canonical_source_even_when_slower() -> None:
    canonical = StaticSource("dexscreener", 2.0, delay=0.02)
    fallback = StaticSource("birdeye", 3.0)
    oracle = PriceOracle([canonical, fallback], ReadThroughCache())

    assert asyncio.run(oracle.get_price(MINT)) == 2.0
    assert canonical.calls == 1 and fallback.calls == 1


def test_oracle_falls_back_and_counts_errors() -> None:
    METRICS.reset()
    canonical = StaticSource("dexscreener", None, error=RuntimeError("HTTP 500"))
    fallback = StaticSource("birdeye", 3.0)
    oracle = PriceOracle([canonical, fallback], ReadThroughCache())

    assert asyncio.run(oracle.get_price(MINT)) == 3.0
    assert METRICS.get("price_source_errors.dexscreener") == 1


def test_oracle_caches_resolved_price() -> None:
    canonical = StaticSource("dexscreener", 2.0)
    oracle = PriceOracle([canonical], ReadThroughCache())

    async def scenario() -> None:
        await oracle.get_price(MINT)
        await oracle.get_price(MINT)

    asyncio.run(scenario())
    assert canonical.calls == 1


def test_oracle_returns_none_when_no_source_has_price() -> None:
    oracle = PriceOracle([StaticSource("a", None), StaticSource("b", None)], ReadThroughCache())
    assert asyncio.run(oracle.get_price(MINT)) is None


def test_dexscreener_reads_first_solana_pair() -> None:
    session = FakeSession(
        {
            "pairs": [
                {"chainId": "ethereum", "priceNative": "9.0"},
                {"chainId": "solana", "priceNative": "0.0042"},
                {"chainId": "solana", "priceNative": "1.0"},
            ]
        }
    )
    source = DexScreenerPriceSource(DataSourceConfig(), session)

    assert asyncio.run(source.resolve(MINT)) == pytest.approx(0.0042)
    assert session.calls[0]["url"].endswith(f"/{MINT}")


def test_birdeye_requires_api_key() -> None:
    session = FakeSession({"data": {"value": 1.25}})
    assert asyncio.run(BirdeyePriceSource(DataSourceConfig(), session).resolve(MINT)) is None
    assert session.calls == []

    keyed = BirdeyePriceSource(DataSourceConfig(birdeye_api_key="secret"), session)
    assert asyncio.run(keyed.resolve(MINT)) == pytest.approx(1.25)
    assert session.calls[0]["headers"] == {"X-API-KEY": "secret"}
    assert session.calls[0]["params"] == {"address": MINT}


def test_parse_pair_statistics() -> None:
    stats = parse_pair_statistics(
        {
            "priceChange": {"m5": 6.5, "h1": "12", "h24": None},
            "volume": {"m5": 100, "h1": 1200},
            "txns": {"m5": {"buys": 7, "sells": 3}, "h1": {"buys": "60", "sells": 40}},
            "liquidity": {"usd": 12_345.6},
        }
    )
    assert stats.price_change.m5 == 6.5
    assert stats.price_change.h1 == 12.0
    assert stats.price_change.h24 == 0.0
    assert stats.volume.h1 == 1200.0
    assert (stats.txns_m5.buys, stats.txns_m5.sells) == (7, 3)
    assert (stats.txns_h1.buys, stats.txns_h1.sells) == (60, 40)
    assert stats.liquidity_usd == pytest.approx(12_345.6)


def test_source_caches_missing_price() -> None:
    session = FakeSession({"pairs": [{"chainId": "ethereum", "priceNative": "9.0"}]})
    source = DexScreenerPriceSource(DataSourceConfig(), session)

    async def scenario():
        return [await source.resolve(MINT), await source.resolve(MINT)]

    assert asyncio.run(scenario()) == [None, None]
    assert len(session.calls) == 1
