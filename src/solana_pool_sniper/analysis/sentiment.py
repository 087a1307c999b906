"""Composite market sentiment from price, volume, flow and liquidity signals."""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import asdict, is_dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config.settings import SentimentConfig, get_app_config
from ..datalake.schemas import (
    HorizonMetrics,
    SentimentFactors,
    SentimentLevel,
    SentimentResult,
    TokenBalanceChange,
)
from ..ingestion.interfaces import ChainAccountReader
from ..monitoring.logger import get_logger
from ..utils.cache import TTL_SLOW, ReadThroughCache, cache_key
from ..utils.constants import utc_now

PRICE_ACTION_WEIGHTS = {"m5": 0.1, "h1": 0.2, "h6": 0.3, "h24": 0.4}
FACTOR_WEIGHTS = (0.30, 0.20, 0.20, 0.15, 0.15)

Horizons = Mapping[str, Optional[float]]

_logger = get_logger(__name__)


def _clamp(value: float, low: float = -100.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _as_mapping(value: Any) -> Dict[str, Optional[float]]:
    if is_dataclass(value):
        return asdict(value)
    return dict(value or {})


def analyze_price_action(price_changes: Any) -> float:
    """Weighted mean of the horizon price changes that are present, clamped to ±100."""

    changes = _as_mapping(price_changes)
    weighted_sum = 0.0
    total_weight = 0.0
    for horizon, weight in PRICE_ACTION_WEIGHTS.items():
        value = changes.get(horizon)
        if value is None:
            continue
        weighted_sum += float(value) * weight
        total_weight += weight
    if total_weight == 0:
        return 0.0
    return _clamp(weighted_sum / total_weight)


def analyze_volume_trend(volumes: Any) -> float:
    """Last hour against the hourly average implied by 24h volume.

    A ratio of 2 scores +100 while a ratio of 0.5 already scores -100.
    """

    data = _as_mapping(volumes)
    h1 = data.get("h1")
    h24 = data.get("h24")
    if not h1 or not h24:
        return 0.0
    ratio = float(h1) / (float(h24) / 24)
    if ratio >= 1:
        return min(100.0, (ratio - 1) * 100)
    return max(-100.0, (ratio - 1) * 200)


def analyze_liquidity_change(current_liquidity: float, previous_liquidity: Optional[float]) -> float:
    if not previous_liquidity:
        return 0.0
    return _clamp((current_liquidity - previous_liquidity) / previous_liquidity * 100)


def count_buys_and_sells(changes: Sequence[TokenBalanceChange], mint: str) -> Tuple[int, int]:
    buys = sells = 0
    for change in changes:
        if change.mint != mint or change.post_amount is None:
            continue
        if change.pre_amount is None:
            if change.post_amount > 0:
                buys += 1
        elif change.post_amount > change.pre_amount:
            buys += 1
        elif change.post_amount < change.pre_amount:
            sells += 1
    return buys, sells


def score_buy_sell_pressure(buys: int, sells: int) -> float:
    total = buys + sells
    if total == 0:
        return 0.0
    return float(round((buys / total - 0.5) * 200))


def large_flows(changes: Sequence[TokenBalanceChange], mint: str, threshold: int) -> Tuple[int, int]:
    inflow = outflow = 0
    for change in changes:
        if change.mint != mint or change.pre_amount is None or change.post_amount is None:
            continue
        delta = change.post_amount - change.pre_amount
        if abs(delta) > threshold:
            if delta > 0:
                inflow += delta
            else:
                outflow += -delta
    return inflow, outflow


def score_whale_flow(inflow: float, outflow: float) -> float:
    total = inflow + outflow
    if total == 0:
        return 0.0
    return _clamp((inflow - outflow) / total * 100)


def sentiment_level(score: float) -> SentimentLevel:
    if score >= 60:
        return SentimentLevel.VERY_BULLISH
    if score >= 20:
        return SentimentLevel.BULLISH
    if score > -20:
        return SentimentLevel.NEUTRAL
    if score > -60:
        return SentimentLevel.BEARISH
    return SentimentLevel.VERY_BEARISH


def combine_sentiment(factors: SentimentFactors) -> Tuple[float, float, SentimentLevel]:
    """Weighted score, agreement-based confidence and level bucket.

    Confidence falls as the factors disagree with the overall score:
    ``100 - sqrt(mean((f - score)^2)) / 2``, clamped to ``[0, 100]``.
    """

    values = factors.as_tuple()
    score = float(round(sum(value * weight for value, weight in zip(values, FACTOR_WEIGHTS))))
    variance = sum((value - score) ** 2 for value in values) / len(values)
    confidence = _clamp(100 - math.sqrt(variance) / 2, 0.0, 100.0)
    return score, confidence, sentiment_level(score)


def should_trade_based_on_sentiment(
    result: SentimentResult,
    min_confidence: float = 60.0,
    required_level: SentimentLevel = SentimentLevel.NEUTRAL,
) -> bool:
    if result.confidence < min_confidence:
        _logger.info("Market sentiment confidence too low: %.1f%% < %.1f%%", result.confidence, min_confidence)
        return False
    if result.level < required_level:
        _logger.info("Market sentiment %s below required %s", result.level.name, required_level.name)
        return False
    return True


class SentimentAnalyzer:
    """Samples on-chain activity for a mint and caches the composite result."""

    def __init__(
        self,
        reader: ChainAccountReader,
        cache: ReadThroughCache,
        config: Optional[SentimentConfig] = None,
        *,
        ttl: float = TTL_SLOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._reader = reader
        self._cache = cache
        self._config = config or get_app_config().sentiment
        self._ttl = ttl
        self._clock = clock
        self._logger = get_logger(__name__)

    async def _recent_balance_changes(self, mint: str, limit: int, sample_size: int) -> List[TokenBalanceChange]:
        signatures = await self._reader.get_signatures_for_address(mint, limit)
        now = self._clock()
        recent = [
            signature
            for signature, block_time in signatures
            if block_time and now - block_time < self._config.lookback_seconds
        ][:sample_size]
        if not recent:
            return []
        results = await asyncio.gather(
            *(self._reader.get_transaction_token_balances(signature) for signature in recent),
            return_exceptions=True,
        )
        changes: List[TokenBalanceChange] = []
        for signature, result in zip(recent, results):
            if isinstance(result, BaseException):
                self._logger.debug("Skipping transaction %s: %s", signature, result)
                continue
            changes.extend(result)
        return changes

    async def buy_sell_pressure(self, mint: str) -> float:
        try:
            changes = await self._recent_balance_changes(
                mint, self._config.signature_limit, self._config.transaction_sample_size
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Error analyzing buy/sell pressure for %s: %s", mint, exc)
            return 0.0
        return score_buy_sell_pressure(*count_buys_and_sells(changes, mint))

    async def whale_activity(self, mint: str) -> float:
        try:
            changes = await self._recent_balance_changes(
                mint, self._config.whale_signature_limit, self._config.whale_sample_size
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Error detecting whale activity for %s: %s", mint, exc)
            return 0.0
        return score_whale_flow(*large_flows(changes, mint, self._config.whale_threshold_raw))

    async def get_sentiment(
        self,
        mint: str,
        price_changes: HorizonMetrics,
        volumes: HorizonMetrics,
        current_liquidity: float,
        previous_liquidity: Optional[float],
    ) -> SentimentResult:
        key = cache_key("sentiment", mint)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        pressure, whales = await asyncio.gather(self.buy_sell_pressure(mint), self.whale_activity(mint))
        factors = SentimentFactors(
            price_action=analyze_price_action(price_changes),
            volume_trend=analyze_volume_trend(volumes),
            buy_vs_sell_pressure=pressure,
            liquidity_change=analyze_liquidity_change(current_liquidity, previous_liquidity),
            whale_activity=whales,
        )
        score, confidence, level = combine_sentiment(factors)
        result = SentimentResult(
            level=level,
            score=score,
            confidence=confidence,
            factors=factors,
            timestamp=utc_now(),
        )
        self._cache.set(key, result, self._ttl)
        return result


__all__ = [
    "SentimentAnalyzer",
    "analyze_liquidity_change",
    "analyze_price_action",
    "analyze_volume_trend",
    "combine_sentiment",
    "count_buys_and_sells",
    "large_flows",
    "score_buy_sell_pressure",
    "score_whale_flow",
    "sentiment_level",
    "should_trade_based_on_sentiment",
]
