"""Momentum heuristics used for dynamic position sizing."""

from __future__ import annotations

from ..config.settings import RiskLevel
from ..datalake.schemas import HorizonMetrics, MarketConditions, TxnCounts

MAX_CONFIDENCE = 0.9

RISK_MULTIPLIERS = {
    RiskLevel.LOW: 0.5,
    RiskLevel.MEDIUM: 1.0,
    RiskLevel.HIGH: 1.5,
}


def _buy_ratio(counts: TxnCounts) -> float:
    return counts.buys / ((counts.buys + counts.sells) or 1)


def analyze_market_conditions(
    price_change: HorizonMetrics,
    volume: HorizonMetrics,
    txns_m5: TxnCounts,
    txns_h1: TxnCounts,
) -> MarketConditions:
    """Additive bullishness score in ``[0, 0.9]`` with a human-readable reason."""

    bullish = False
    confidence = 0.0
    reason = "Neutral market conditions"

    if price_change.m5 > 5 and price_change.h1 > 10:
        bullish, confidence, reason = True, 0.7, "Strong uptrend detected"

    if volume.m5 > volume.h1 / 12:
        confidence += 0.1
        reason += ", increasing volume"

    if _buy_ratio(txns_m5) > 0.6 and _buy_ratio(txns_h1) > 0.55:
        confidence += 0.1
        reason += ", positive buy pressure"
        bullish = True

    # a sharp hourly drop with a 5m bounce overrides everything above
    if price_change.h1 < -5 and price_change.m5 > 2:
        bullish, confidence, reason = True, 0.6, "Potential reversal detected"

    return MarketConditions(is_bullish=bullish, confidence=min(confidence, MAX_CONFIDENCE), reason=reason)


def calculate_position_size(base_amount: float, conditions: MarketConditions) -> float:
    if not conditions.is_bullish:
        return 0.0
    return base_amount * conditions.confidence


def adjust_position_size_by_risk(size: float, risk_level: RiskLevel) -> float:
    return size * RISK_MULTIPLIERS.get(risk_level, 1.0)


__all__ = [
    "RISK_MULTIPLIERS",
    "adjust_position_size_by_risk",
    "analyze_market_conditions",
    "calculate_position_size",
]
