from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from solana_pool_sniper.analysis.sentiment import (
    SentimentAnalyzer,
    analyze_liquidity_change,
    analyze_price_action,
    analyze_volume_trend,
    combine_sentiment,
    count_buys_and_sells,
    large_flows,
    score_buy_sell_pressure,
    sentiment_level,
    should_trade_based_on_sentiment,
)
from solana_pool_sniper.config.settings import SentimentConfig
from solana_pool_sniper.datalake.schemas import (
    HorizonMetrics,
    SentimentFactors,
    SentimentLevel,
    SentimentResult,
    TokenBalanceChange,
)
from solana_pool_sniper.utils.cache import ReadThroughCache

MINT = "So11111111111111111111111111111111111111112"
NOW = 1_700_000_000


class FakeReader:
    def __init__(self, signatures: List[Tuple[str, Optional[int]]], txs: Dict[str, List[TokenBalanceChange]]) -> None:
        self.signatures = signatures
        self.txs = txs
        self.signature_calls = 0

    async def get_signatures_for_address(self, address: str, limit: int):
        self.signature_calls += 1
        return self.signatures[:limit]

    async def get_transaction_token_balances(self, signature: str):
        if signature not in self.txs:
            raise RuntimeError("transaction pruned")
        return self.txs[signature]


def test_price_action_uses_only_present_horizons() -> None:
    assert analyze_price_action({"m5": 10.0}) == pytest.approx(10.0)
    assert analyze_price_action({"h1": 10.0, "h24": 40.0}) == pytest.approx((2 + 16) / 0.6)
    assert analyze_price_action({}) == 0.0
    assert analyze_price_action({"h24": 500.0}) == 100.0


def test_volume_trend_is_asymmetric() -> None:
    assert analyze_volume_trend(HorizonMetrics(h1=2, h24=24)) == pytest.approx(100.0)
    assert analyze_volume_trend(HorizonMetrics(h1=0.5, h24=24)) == pytest.approx(-100.0)
    assert analyze_volume_trend(HorizonMetrics(h1=1.5, h24=24)) == pytest.approx(50.0)
    assert analyze_volume_trend(HorizonMetrics()) == 0.0


def test_liquidity_change_percent() -> None:
    assert analyze_liquidity_change(110.0, 100.0) == pytest.approx(10.0)
    assert analyze_liquidity_change(110.0, None) == 0.0
    assert analyze_liquidity_change(1_000.0, 1.0) == 100.0


def test_buy_sell_counting() -> None:
    changes = [
        TokenBalanceChange(owner="a", mint=MINT, pre_amount=None, post_amount=10),
        TokenBalanceChange(owner="b", mint=MINT, pre_amount=5, post_amount=8),
        TokenBalanceChange(owner="c", mint=MINT, pre_amount=8, post_amount=1),
        TokenBalanceChange(owner="d", mint="other", pre_amount=0, post_amount=100),
        TokenBalanceChange(owner="e", mint=MINT, pre_amount=3, post_amount=3),
    ]
    assert count_buys_and_sells(changes, MINT) == (2, 1)
    assert score_buy_sell_pressure(2, 1) == pytest.approx(33.0)
    assert score_buy_sell_pressure(0, 0) == 0.0


def test_large_flows_ignore_small_moves() -> None:
    changes = [
        TokenBalanceChange(owner="a", mint=MINT, pre_amount=0, post_amount=5_000_000),
        TokenBalanceChange(owner="b", mint=MINT, pre_amount=3_000_000, post_amount=0),
        TokenBalanceChange(owner="c", mint=MINT, pre_amount=0, post_amount=10),
    ]
    assert large_flows(changes, MINT, 1_000_000) == (5_000_000, 3_000_000)


@pytest.mark.parametrize(
    "score, level",
    [
        (60, SentimentLevel.VERY_BULLISH),
        (20, SentimentLevel.BULLISH),
        (0, SentimentLevel.NEUTRAL),
        (-20, SentimentLevel.BEARISH),
        (-60, SentimentLevel.VERY_BEARISH),
    ],
)
def test_sentiment_levels(score: float, level: SentimentLevel) -> None:
    assert sentiment_level(score) is level


def test_combine_is_deterministic() -> None:
    factors = SentimentFactors(40.0, 20.0, -10.0, 5.0, 60.0)
    first = combine_sentiment(factors)
    assert all(combine_sentiment(factors) == first for _ in range(10))
    score, confidence, level = first
    assert score == pytest.approx(round(40 * 0.3 + 20 * 0.2 - 10 * 0.2 + 5 * 0.15 + 60 * 0.15))
    assert 0.0 <= confidence <= 100.0
    assert level is SentimentLevel.BULLISH


def test_agreeing_factors_give_full_confidence() -> None:
    score, confidence, _ = combine_sentiment(SentimentFactors(50.0, 50.0, 50.0, 50.0, 50.0))
    assert score == 50.0
    assert confidence == pytest.approx(100.0)


def test_should_trade_thresholds() -> None:
    result = SentimentResult(
        level=SentimentLevel.NEUTRAL, score=0.0, confidence=70.0, factors=SentimentFactors()
    )
    assert should_trade_based_on_sentiment(result, 60.0, SentimentLevel.NEUTRAL)
    assert not should_trade_based_on_sentiment(result, 80.0, SentimentLevel.NEUTRAL)
    assert not should_trade_based_on_sentiment(result, 60.0, SentimentLevel.BULLISH)


def test_analyzer_samples_recent_transactions_and_caches() -> None:
    reader = FakeReader(
        signatures=[("s1", NOW - 10), ("s2", NOW - 20), ("s3", NOW - 7_200), ("s4", None), ("s5", NOW - 5)],
        txs={
            "s1": [TokenBalanceChange(owner="a", mint=MINT, pre_amount=0, post_amount=2_000_000)],
            "s2": [TokenBalanceChange(owner="b", mint=MINT, pre_amount=None, post_amount=1)],
            "s3": [TokenBalanceChange(owner="c", mint=MINT, pre_amount=10, post_amount=0)],
        },
    )
    analyzer = SentimentAnalyzer(reader, ReadThroughCache(), SentimentConfig(), clock=lambda: NOW)

    async def scenario():
        first = await analyzer.get_sentiment(MINT, HorizonMetrics(), HorizonMetrics(), 100.0, 100.0)
        second = await analyzer.get_sentiment(MINT, HorizonMetrics(m5=50), HorizonMetrics(), 100.0, 100.0)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.factors.buy_vs_sell_pressure == pytest.approx(100.0)
    assert first.factors.whale_activity == pytest.approx(100.0)
    assert second is first
    assert reader.signature_calls == 2


def test_analyzer_failures_score_zero() -> None:
    class BrokenReader:
        async def get_signatures_for_address(self, address: str, limit: int):
            raise RuntimeError("rpc unavailable")

    analyzer = SentimentAnalyzer(BrokenReader(), ReadThroughCache(), SentimentConfig(), clock=lambda: NOW)
    assert asyncio.run(analyzer.buy_sell_pressure(MINT)) == 0.0
    assert asyncio.run(analyzer.whale_activity(MINT)) == 0.0
