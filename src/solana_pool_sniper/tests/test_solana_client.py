from __future__ import annotations

import asyncio
import math
from types import SimpleNamespace

import pytest

from solana_pool_sniper.config.settings import RPCConfig
from solana_pool_sniper.execution.solana_client import (
    DEFAULT_COMPUTE_UNIT_PRICE,
    SolanaRpc,
    recommended_priority_fee,
)
from solana_pool_sniper.monitoring.metrics import METRICS
from solana_pool_sniper.utils.errors import UpstreamUnavailable


def test_priority_fee_defaults_without_samples() -> None:
    assert recommended_priority_fee([]) == DEFAULT_COMPUTE_UNIT_PRICE


def test_priority_fee_uses_median_of_newest_samples() -> None:
    old = [(slot, 1_000_000) for slot in range(10)]
    recent = [(100 + slot, fee) for slot, fee in enumerate(range(1_000, 21_000, 1_000))]
    fee = recommended_priority_fee(old + recent)

    fees = sorted(fee for _, fee in recent)
    assert fee == math.ceil(fees[len(fees) // 2] * 1.2)


def test_priority_fee_respects_multiplier() -> None:
    assert recommended_priority_fee([(1, 100)], multiplier=1.5) == 150


class FailingClient:
    async def get_latest_blockhash(self, commitment):
        raise ConnectionError("connection reset")

    async def close(self) -> None:
        return None


class BalanceClient:
    async def get_token_account_balance(self, pubkey):
        return SimpleNamespace(value=SimpleNamespace(ui_amount=12.5))


def rpc_config() -> RPCConfig:
    return RPCConfig(primary_url="https://rpc.example", websocket_url="wss://rpc.example")


def test_rpc_failures_become_upstream_unavailable() -> None:
    METRICS.reset()
    rpc = SolanaRpc(rpc_config(), client=FailingClient())
    with pytest.raises(UpstreamUnavailable):
        asyncio.run(rpc.get_latest_blockhash())
    assert METRICS.get("rpc_errors.get_latest_blockhash") == 1


def test_rpc_unwraps_response_values() -> None:
    rpc = SolanaRpc(rpc_config(), client=BalanceClient())
    account = "So11111111111111111111111111111111111111112"
    assert asyncio.run(rpc.get_token_account_balance(account)) == 12.5
