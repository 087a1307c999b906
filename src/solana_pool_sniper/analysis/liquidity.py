"""Constant-product liquidity, slippage and price-impact heuristics."""

from __future__ import annotations

import math
from typing import Union

from ..datalake.schemas import LiquidityAnalysis, PriceImpactCheck
from ..monitoring.logger import get_logger

Number = Union[int, float]

PROBE_TRADE_FRACTION = 0.01
LIQUIDITY_SCORE_DIVISOR = 10_000.0
MAX_SUBSCORE = 50.0
SLIPPAGE_PENALTY_PER_PERCENT = 10.0
BUY_THRESHOLD = 70.0
SELL_THRESHOLD = 30.0
MAX_IMPACT = 100.0

_logger = get_logger(__name__)


def _recommend(score: float) -> str:
    if score > BUY_THRESHOLD:
        return "buy"
    if score < SELL_THRESHOLD:
        return "sell"
    return "hold"


def analyze_liquidity_pool(
    base_reserve: Number,
    quote_reserve: Number,
    base_price: Number,
    quote_price: Number = 1.0,
) -> LiquidityAnalysis:
    """Score a pool by depth and by the slippage of a 1%-of-liquidity probe trade.

    The probe is paid in quote and solved against ``k = base * quote``. Depth
    earns up to 50 points (one per 10k of liquidity) and slippage costs 10
    points per percent from a 50 point budget.
    """

    b = float(base_reserve)
    q = float(quote_reserve)
    liquidity = b * float(base_price) + q * float(quote_price)
    if b <= 0 or q <= 0:
        return LiquidityAnalysis(liquidity=liquidity, slippage=MAX_IMPACT, trading_score=0.0, recommendation="sell")

    trade_size = liquidity * PROBE_TRADE_FRACTION
    k = b * q
    new_quote = q + trade_size
    base_received = b - k / new_quote
    if trade_size <= 0 or base_received <= 0:
        slippage = MAX_IMPACT if trade_size > 0 else 0.0
    else:
        effective_price = trade_size / base_received
        current_price = q / b
        slippage = (effective_price / current_price - 1) * 100

    liquidity_score = min(liquidity / LIQUIDITY_SCORE_DIVISOR, MAX_SUBSCORE)
    slippage_score = max(0.0, MAX_SUBSCORE - slippage * SLIPPAGE_PENALTY_PER_PERCENT)
    score = liquidity_score + slippage_score
    return LiquidityAnalysis(
        liquidity=liquidity,
        slippage=slippage,
        trading_score=score,
        recommendation=_recommend(score),
    )


def calculate_optimal_swap_amount(quote_reserve: Number, max_slippage_percent: float = 1.0) -> float:
    """Largest quote input whose price impact stays within ``max_slippage_percent``."""

    q = float(quote_reserve)
    if q <= 0 or max_slippage_percent <= 0:
        return 0.0
    return q * (math.sqrt(1 + max_slippage_percent / 100) - 1)


def calculate_price_impact(
    base_reserve: Number,
    quote_reserve: Number,
    amount_in: Number,
    base_to_quote: bool,
) -> float:
    """Percent move of the pool price caused by swapping ``amount_in``.

    Returns 100 for empty pools or any arithmetic failure.
    """

    try:
        b = float(base_reserve)
        q = float(quote_reserve)
        if b <= 0 or q <= 0:
            return MAX_IMPACT
        amount = float(amount_in)
        k = b * q
        current_price = q / b
        if base_to_quote:
            new_base = b + amount
            new_quote = k / new_base
            new_price = new_quote / new_base
            impact = (current_price - new_price) / current_price
        else:
            new_quote = q + amount
            new_base = k / new_quote
            new_price = new_quote / new_base
            impact = (new_price - current_price) / current_price
        result = abs(impact) * 100
    except (ArithmeticError, TypeError, ValueError) as exc:
        _logger.error("Error calculating price impact: %s", exc)
        return MAX_IMPACT
    if not math.isfinite(result):
        return MAX_IMPACT
    return result


def check_price_impact(
    base_reserve: Number,
    quote_reserve: Number,
    amount_in: Number,
    base_to_quote: bool,
    max_price_impact_percent: float,
) -> PriceImpactCheck:
    impact = calculate_price_impact(base_reserve, quote_reserve, amount_in, base_to_quote)
    should_proceed = impact <= max_price_impact_percent
    if not should_proceed:
        _logger.warning(
            "Price impact too high: %.2f%% > %.2f%%",
            impact,
            max_price_impact_percent,
            extra={"amount_in": amount_in},
        )
    return PriceImpactCheck(should_proceed=should_proceed, price_impact=impact)


__all__ = [
    "analyze_liquidity_pool",
    "calculate_optimal_swap_amount",
    "calculate_price_impact",
    "check_price_impact",
]
