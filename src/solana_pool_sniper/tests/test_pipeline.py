from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pytest

from solana_pool_sniper.config.settings import (
    AppConfig,
    PriceImpactConfig,
    RiskConfig,
    SentimentConfig,
    SnipeListConfig,
    TradingConfig,
    TradingHoursConfig,
)
from solana_pool_sniper.datalake.schemas import (
    MarketStatistics,
    PoolCandidate,
    SecurityVerdict,
    SentimentFactors,
    SentimentLevel,
    SentimentResult,
    TradeSide,
)
from solana_pool_sniper.execution.positions import TradeAttemptRegistry
from solana_pool_sniper.ingestion.allow_list import SnipeList
from solana_pool_sniper.monitoring.metrics import METRICS
from solana_pool_sniper.strategy.pipeline import (
    GATE_ALLOW_LIST,
    GATE_CONCURRENCY,
    GATE_LIQUIDITY,
    GATE_PRICE_IMPACT,
    GATE_RISK,
    GATE_SECURITY,
    GATE_SENTIMENT,
    GATE_TRADING_WINDOW,
    DecisionPipeline,
)
from solana_pool_sniper.strategy.risk import SessionRiskState
from solana_pool_sniper.utils.constants import SOL_MINT
from solana_pool_sniper.utils.errors import UpstreamUnavailable

# A fresh pool: 100M tokens against 200 SOL, priced in line with its reserves.
BASE_RESERVE = 100_000_000 * 10**6
QUOTE_RESERVE = 200 * 10**9
BASE_PRICE = 2e-6


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_CONFIG_FILE", str(tmp_path / "absent.toml"))
    METRICS.reset()
    yield


def make_candidate() -> PoolCandidate:
    return PoolCandidate(
        pool_id="pool",
        base_mint="mintA",
        quote_mint=SOL_MINT,
        base_decimals=6,
        quote_decimals=9,
        base_vault="base-vault",
        quote_vault="quote-vault",
        market_id="market",
        market_program_id="openbook",
    )


class FakeGateway:
    def __init__(self, price: float = BASE_PRICE) -> None:
        self.price = price
        self.reserves = (BASE_RESERVE, QUOTE_RESERVE)
        self.reserves_error: Optional[Exception] = None
        self.refreshed: List[str] = []

    async def refresh_pool_reserves(self, candidate: PoolCandidate) -> PoolCandidate:
        self.refreshed.append(candidate.pool_id)
        if self.reserves_error is not None:
            raise self.reserves_error
        return candidate.with_reserves(*self.reserves)

    async def get_token_price(self, mint: str) -> Optional[float]:
        return self.price

    async def get_market_statistics(self, mint: str) -> MarketStatistics:
        return MarketStatistics(liquidity_usd=4_000_000.0)


class FakeSecurity:
    def __init__(self, verdict: SecurityVerdict = SecurityVerdict(is_safe=True)) -> None:
        self.verdict = verdict
        self.checked: List[str] = []

    async def check(self, mint: str) -> SecurityVerdict:
        self.checked.append(mint)
        return self.verdict


class FakeSentiment:
    def __init__(self, result: Optional[SentimentResult] = None, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.calls = 0

    async def get_sentiment(self, mint, price_changes, volumes, current_liquidity, previous_liquidity):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class Harness:
    def __init__(
        self,
        *,
        config: AppConfig,
        clock=lambda: datetime(2024, 5, 1, 12, 0),
        sentiment: Optional[FakeSentiment] = None,
    ) -> None:
        self.attempts = TradeAttemptRegistry()
        self.session = SessionRiskState(config.risk, config.trading_hours, clock=clock)
        self.gateway = FakeGateway()
        self.security = FakeSecurity()
        self.sentiment = sentiment or FakeSentiment()
        self.snipe_list = SnipeList(config.snipe_list)
        self.pipeline = DecisionPipeline(
            attempts=self.attempts,
            session=self.session,
            gateway=self.gateway,
            security=self.security,
            sentiment=self.sentiment,
            snipe_list=self.snipe_list,
            config=config,
        )

    def evaluate(self, candidate: Optional[PoolCandidate] = None):
        return asyncio.run(self.pipeline.evaluate_buy(candidate or make_candidate()))


def make_config(**sections) -> AppConfig:
    sections.setdefault("trading", TradingConfig(quote_mint="WSOL", quote_amount=1.0))
    return AppConfig(**sections)


def test_approved_candidate_carries_fresh_reserves() -> None:
    harness = Harness(config=make_config())
    result = harness.evaluate()

    assert result.approved
    assert result.context["candidate"].quote_reserve == QUOTE_RESERVE
    assert result.context["liquidity"].recommendation == "buy"
    assert harness.security.checked == ["mintA"]


def test_concurrency_gate_short_circuits() -> None:
    harness = Harness(config=make_config(risk=RiskConfig(max_concurrent_transactions=2)))
    harness.attempts.try_acquire("x", TradeSide.BUY)
    harness.attempts.try_acquire("y", TradeSide.SELL)

    result = harness.evaluate()

    assert not result.approved
    assert result.gate == GATE_CONCURRENCY
    assert harness.security.checked == []
    assert harness.gateway.refreshed == []
    assert METRICS.get("pipeline_rejections.concurrency") == 1


def test_trading_window_gate() -> None:
    config = make_config(trading_hours=TradingHoursConfig(enabled=True, start_hour=9, end_hour=17))
    harness = Harness(config=config, clock=lambda: datetime(2024, 5, 1, 20, 0))

    result = harness.evaluate()
    assert result.gate == GATE_TRADING_WINDOW
    assert harness.pipeline.evaluate_sell_window().gate == GATE_TRADING_WINDOW


def test_daily_trade_limit_blocks_buys_but_not_sells() -> None:
    harness = Harness(config=make_config(risk=RiskConfig(max_daily_trades=2)))
    harness.session.record_trade()
    harness.session.record_trade()

    assert harness.evaluate().gate == GATE_RISK
    assert harness.pipeline.evaluate_sell_window().approved


def test_risk_gate_can_apply_to_sells() -> None:
    harness = Harness(config=make_config(risk=RiskConfig(max_daily_trades=1, apply_risk_gate_to_sells=True)))
    harness.session.record_trade()
    assert harness.pipeline.evaluate_sell_window().gate == GATE_RISK


def test_snipe_list_gate(tmp_path: Path) -> None:
    path = tmp_path / "snipe-list.txt"
    path.write_text("mintB\n")
    harness = Harness(config=make_config(snipe_list=SnipeListConfig(enabled=True, path=path)))
    harness.snipe_list.load()

    result = harness.evaluate()
    assert result.gate == GATE_ALLOW_LIST
    assert harness.security.checked == []


def test_unsafe_mint_is_rejected() -> None:
    harness = Harness(config=make_config())
    harness.security.verdict = SecurityVerdict(is_safe=False, reason="Token is mintable")

    result = harness.evaluate()
    assert result.gate == GATE_SECURITY
    assert result.reason == "Token is mintable"
    assert harness.gateway.refreshed == []


def test_unavailable_reserves_reject_at_liquidity() -> None:
    harness = Harness(config=make_config())
    harness.gateway.reserves_error = UpstreamUnavailable("vaults", "timeout")
    assert harness.evaluate().gate == GATE_LIQUIDITY


def test_min_pool_size_is_enforced() -> None:
    trading = TradingConfig(quote_mint="WSOL", quote_amount=1.0, min_pool_size=1_000_000)
    harness = Harness(config=make_config(trading=trading))

    result = harness.evaluate()
    assert result.gate == GATE_LIQUIDITY
    assert "below minimum" in result.reason


def test_small_fresh_pool_scores_a_buy() -> None:
    harness = Harness(config=make_config())
    analysis = harness.evaluate().context["liquidity"]

    assert analysis.trading_score > 70
    assert analysis.slippage == pytest.approx(1.0, abs=0.01)


def test_pool_priced_far_above_its_reserves_is_held() -> None:
    harness = Harness(config=make_config())
    harness.gateway.price = BASE_PRICE * 10_000

    result = harness.evaluate()
    assert result.gate == GATE_LIQUIDITY
    assert "hold" in result.reason


def test_empty_quote_side_is_rejected() -> None:
    harness = Harness(config=make_config())
    harness.gateway.reserves = (BASE_RESERVE, 0)
    assert harness.evaluate().gate == GATE_LIQUIDITY


def test_price_impact_gate() -> None:
    strict = make_config(price_impact=PriceImpactConfig(enabled=True, max_price_impact_percent=0.0001))
    assert Harness(config=strict).evaluate().gate == GATE_PRICE_IMPACT

    relaxed = make_config(price_impact=PriceImpactConfig(enabled=True, max_price_impact_percent=3.0))
    assert Harness(config=relaxed).evaluate().approved


def test_sentiment_failure_does_not_block() -> None:
    harness = Harness(
        config=make_config(sentiment=SentimentConfig(enabled=True)),
        sentiment=FakeSentiment(error=RuntimeError("rpc down")),
    )
    assert harness.evaluate().approved
    assert harness.sentiment.calls == 1


def test_bearish_sentiment_is_rejected() -> None:
    bearish = SentimentResult(
        level=SentimentLevel.BEARISH, score=30.0, confidence=90.0, factors=SentimentFactors()
    )
    harness = Harness(
        config=make_config(sentiment=SentimentConfig(enabled=True)),
        sentiment=FakeSentiment(result=bearish),
    )
    assert harness.evaluate().gate == GATE_SENTIMENT


def test_sentiment_gate_skipped_when_disabled() -> None:
    harness = Harness(config=make_config(), sentiment=FakeSentiment(error=AssertionError("not called")))
    assert harness.evaluate().approved
    assert harness.sentiment.calls == 0
