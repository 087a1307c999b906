"""Ordered, short-circuiting gate sequence deciding whether to trade a pool."""

from __future__ import annotations

import logging
from typing import Optional

from ..analysis.liquidity import analyze_liquidity_pool, calculate_optimal_swap_amount, check_price_impact
from ..analysis.security import MintSafetyChecker
from ..analysis.sentiment import SentimentAnalyzer, should_trade_based_on_sentiment
from ..config.settings import AppConfig, get_app_config
from ..datalake.schemas import GateResult, PoolCandidate
from ..execution.positions import TradeAttemptRegistry
from ..ingestion.allow_list import SnipeList
from ..ingestion.market_data import MarketDataGateway
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.errors import InsufficientSafety, UpstreamUnavailable
from .risk import SessionRiskState

GATE_CONCURRENCY = "concurrency"
GATE_TRADING_WINDOW = "trading_window"
GATE_RISK = "risk"
GATE_ALLOW_LIST = "allow_list"
GATE_SECURITY = "security"
GATE_LIQUIDITY = "liquidity"
GATE_PRICE_IMPACT = "price_impact"
GATE_SENTIMENT = "sentiment"

FALLBACK_PREVIOUS_LIQUIDITY_RATIO = 0.9


def quote_amount_raw(amount: float, decimals: int) -> int:
    return int(amount * (10 ** decimals))


class DecisionPipeline:
    """Authoritative "should we trade" decision.

    Rejections have no side effect beyond a log record and a counter.
    """

    def __init__(
        self,
        *,
        attempts: TradeAttemptRegistry,
        session: SessionRiskState,
        gateway: MarketDataGateway,
        security: MintSafetyChecker,
        sentiment: SentimentAnalyzer,
        snipe_list: SnipeList,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._attempts = attempts
        self._session = session
        self._gateway = gateway
        self._security = security
        self._sentiment = sentiment
        self._snipe_list = snipe_list
        self._config = config or get_app_config()
        self._logger = get_logger(__name__)

    def _reject(self, gate: str, reason: str, level: int = logging.INFO, **context) -> GateResult:
        METRICS.increment(f"pipeline_rejections.{gate}")
        self._logger.log(level, "Rejected at %s", InsufficientSafety(gate, reason), extra={"gate": gate, **context})
        return GateResult.reject(gate, reason, **context)

    def evaluate_admission(self) -> GateResult:
        """Concurrency, trading-window and risk gates."""

        limit = self._config.risk.max_concurrent_transactions
        if self._attempts.count >= limit:
            return self._reject(
                GATE_CONCURRENCY, f"{self._attempts.count} trades in flight (max {limit})", logging.DEBUG
            )
        if not self._session.trading_allowed():
            return self._reject(GATE_TRADING_WINDOW, "outside trading hours", logging.DEBUG)
        rejection = self._session.risk_rejection()
        if rejection is not None:
            return self._reject(GATE_RISK, rejection)
        return GateResult.accept()

    def evaluate_sell_window(self) -> GateResult:
        if not self._session.trading_allowed():
            return self._reject(GATE_TRADING_WINDOW, "selling not allowed outside trading hours", logging.DEBUG)
        if self._config.risk.apply_risk_gate_to_sells:
            rejection = self._session.risk_rejection()
            if rejection is not None:
                return self._reject(GATE_RISK, rejection)
        return GateResult.accept()

    async def evaluate_buy(self, candidate: PoolCandidate) -> GateResult:
        """Run every buy gate in order.

        On approval ``context["candidate"]`` holds the candidate with fresh
        reserves and ``context["liquidity"]`` the pool analysis.
        """

        admission = self.evaluate_admission()
        if not admission.approved:
            return admission

        mint = candidate.base_mint
        if self._snipe_list.enabled and not self._snipe_list.should_buy(mint):
            return self._reject(GATE_ALLOW_LIST, "mint not in snipe list", logging.DEBUG, mint=mint)

        verdict = await self._security.check(mint)
        if not verdict.is_safe:
            return self._reject(GATE_SECURITY, verdict.reason or "unsafe mint", logging.WARNING, mint=mint)

        try:
            candidate = await self._gateway.refresh_pool_reserves(candidate)
        except UpstreamUnavailable as exc:
            return self._reject(GATE_LIQUIDITY, f"reserves unavailable: {exc}", logging.WARNING, mint=mint)

        min_pool_size = self._config.trading.min_pool_size
        if min_pool_size > 0 and candidate.quote_reserve_ui < min_pool_size:
            return self._reject(
                GATE_LIQUIDITY,
                f"pool size {candidate.quote_reserve_ui:.4f} below minimum {min_pool_size}",
                mint=mint,
            )

        base_price = await self._gateway.get_token_price(mint) or 0.0
        analysis = analyze_liquidity_pool(candidate.base_reserve, candidate.quote_reserve, base_price)
        if analysis.recommendation != "buy":
            return self._reject(
                GATE_LIQUIDITY,
                f"pool analysis recommends {analysis.recommendation}",
                mint=mint,
                score=analysis.trading_score,
                liquidity=analysis.liquidity,
                slippage=analysis.slippage,
            )

        impact_cfg = self._config.price_impact
        if impact_cfg.enabled:
            size = quote_amount_raw(self._config.trading.quote_amount or 0.0, candidate.quote_decimals)
            optimal = calculate_optimal_swap_amount(
                candidate.quote_reserve, self._config.trading.max_slippage_percent
            )
            amount = int(min(size, optimal))
            check = check_price_impact(
                candidate.base_reserve,
                candidate.quote_reserve,
                amount,
                False,
                impact_cfg.max_price_impact_percent,
            )
            if not check.should_proceed:
                return self._reject(
                    GATE_PRICE_IMPACT,
                    f"price impact {check.price_impact:.2f}% above {impact_cfg.max_price_impact_percent}%",
                    logging.WARNING,
                    mint=mint,
                )
            self._logger.info("Price impact within acceptable range: %.2f%%", check.price_impact)

        sentiment_cfg = self._config.sentiment
        if sentiment_cfg.enabled:
            try:
                stats = await self._gateway.get_market_statistics(mint)
                previous = stats.previous_liquidity or analysis.liquidity * FALLBACK_PREVIOUS_LIQUIDITY_RATIO
                result = await self._sentiment.get_sentiment(
                    mint, stats.price_change, stats.volume, analysis.liquidity, previous
                )
            except Exception as exc:  # noqa: BLE001
                self._logger.warning("Error analyzing market sentiment for %s, proceeding anyway: %s", mint, exc)
            else:
                if not should_trade_based_on_sentiment(
                    result, sentiment_cfg.min_confidence, sentiment_cfg.required_level
                ):
                    return self._reject(
                        GATE_SENTIMENT,
                        f"sentiment {result.level.name} at {result.confidence:.0f}% confidence",
                        logging.WARNING,
                        mint=mint,
                        score=result.score,
                    )
                self._logger.info(
                    "Market sentiment favorable: %s (score %.0f, confidence %.0f%%)",
                    result.level.name,
                    result.score,
                    result.confidence,
                )

        return GateResult.accept(candidate=candidate, liquidity=analysis)


__all__ = [
    "DecisionPipeline",
    "GATE_ALLOW_LIST",
    "GATE_CONCURRENCY",
    "GATE_LIQUIDITY",
    "GATE_PRICE_IMPACT",
    "GATE_RISK",
    "GATE_SECURITY",
    "GATE_SENTIMENT",
    "GATE_TRADING_WINDOW",
    "quote_amount_raw",
]
