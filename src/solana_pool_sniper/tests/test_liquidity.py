from __future__ import annotations

import math

import pytest

from solana_pool_sniper.analysis.liquidity import (
    analyze_liquidity_pool,
    calculate_optimal_swap_amount,
    calculate_price_impact,
    check_price_impact,
)


def test_liquidity_is_sum_of_both_sides() -> None:
    analysis = analyze_liquidity_pool(1000, 5000, 0.5)
    assert analysis.liquidity == pytest.approx(5500.0)
    assert analysis.slippage > 0


def test_empty_pool_is_never_a_buy() -> None:
    analysis = analyze_liquidity_pool(0, 5000, 0.5)
    assert analysis.recommendation == "sell"
    assert analysis.trading_score == 0.0
    assert analysis.slippage == 100.0


def test_deep_pool_is_recommended() -> None:
    analysis = analyze_liquidity_pool(1_000_000, 1_000_000, 1.0)
    assert analysis.liquidity == pytest.approx(2_000_000.0)
    assert analysis.trading_score > 70
    assert analysis.recommendation == "buy"


def test_optimal_swap_amount_matches_closed_form() -> None:
    amount = calculate_optimal_swap_amount(5000, 1.0)
    assert amount == pytest.approx(5000 * (math.sqrt(1.01) - 1))
    assert amount == pytest.approx(24.94, abs=0.01)
    assert amount < 5000


@pytest.mark.parametrize("max_slippage", [0.1, 0.5, 1.0, 3.0, 10.0])
def test_optimal_amount_stays_within_slippage(max_slippage: float) -> None:
    base, quote = 123_456.0, 789_012.0
    amount = calculate_optimal_swap_amount(quote, max_slippage)
    impact = calculate_price_impact(base, quote, amount, False)
    assert impact <= max_slippage + 1e-9


def test_optimal_amount_increases_with_allowed_slippage() -> None:
    amounts = [calculate_optimal_swap_amount(5000, slip) for slip in (0.1, 0.5, 1.0, 2.0, 5.0)]
    assert all(lower < higher for lower, higher in zip(amounts, amounts[1:]))


def test_optimal_amount_zero_for_empty_reserve() -> None:
    assert calculate_optimal_swap_amount(0, 1.0) == 0.0


@pytest.mark.parametrize("factor", [0.001, 2, 1_000, 1e9])
@pytest.mark.parametrize("base_to_quote", [False, True])
def test_price_impact_is_scale_invariant(factor: float, base_to_quote: bool) -> None:
    base, quote, amount = 1_000.0, 5_000.0, 50.0
    reference = calculate_price_impact(base, quote, amount, base_to_quote)
    scaled = calculate_price_impact(base * factor, quote * factor, amount * factor, base_to_quote)
    assert scaled == pytest.approx(reference, rel=1e-9)


def test_price_impact_degenerate_reserves_are_maximal() -> None:
    assert calculate_price_impact(0, 100, 1, False) == 100.0
    assert calculate_price_impact(100, -1, 1, True) == 100.0


def test_check_price_impact_rejects_large_trades() -> None:
    assert check_price_impact(1_000, 5_000, 10, False, 3.0).should_proceed
    rejected = check_price_impact(1_000, 5_000, 500, False, 3.0)
    assert not rejected.should_proceed
    assert rejected.price_impact > 3.0
