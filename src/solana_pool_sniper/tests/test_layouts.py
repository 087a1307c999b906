from __future__ import annotations

import struct

import pytest
from solders.pubkey import Pubkey

from solana_pool_sniper.ingestion.layouts import (
    LIQUIDITY_STATE_V4_SIZE,
    MARKET_STATE_V3_SIZE,
    MINT_SIZE,
    TOKEN_ACCOUNT_SIZE,
    decode_market_state,
    decode_minimal_market,
    decode_mint,
    decode_pool_state,
    decode_token_account,
    pool_open_time,
    pool_status,
)
from solana_pool_sniper.utils.errors import MalformedAccountData


def _put_key(buffer: bytearray, offset: int) -> str:
    key = Pubkey.new_unique()
    buffer[offset : offset + 32] = bytes(key)
    return str(key)


def test_decode_pool_state_fields() -> None:
    data = bytearray(LIQUIDITY_STATE_V4_SIZE)
    struct.pack_into("<Q", data, 0, 6)
    struct.pack_into("<Q", data, 32, 6)
    struct.pack_into("<Q", data, 40, 9)
    struct.pack_into("<Q", data, 224, 1_700_000_000)
    base_vault = _put_key(data, 336)
    quote_vault = _put_key(data, 368)
    base_mint = _put_key(data, 400)
    quote_mint = _put_key(data, 432)
    market_id = _put_key(data, 528)
    market_program = _put_key(data, 560)

    candidate = decode_pool_state("pool", bytes(data))

    assert candidate.pool_id == "pool"
    assert (candidate.base_decimals, candidate.quote_decimals) == (6, 9)
    assert candidate.base_vault == base_vault
    assert candidate.quote_vault == quote_vault
    assert candidate.base_mint == base_mint
    assert candidate.quote_mint == quote_mint
    assert candidate.market_id == market_id
    assert candidate.market_program_id == market_program
    assert candidate.base_reserve == 0
    assert pool_status(bytes(data)) == 6
    assert pool_open_time(bytes(data)) == 1_700_000_000


def test_short_pool_account_is_malformed() -> None:
    with pytest.raises(MalformedAccountData):
        decode_pool_state("pool", b"\x00" * 100)


def test_decode_market_and_minimal_slice() -> None:
    data = bytearray(MARKET_STATE_V3_SIZE)
    base_mint = _put_key(data, 53)
    quote_mint = _put_key(data, 85)
    event_queue = _put_key(data, 253)
    bids = _put_key(data, 285)
    asks = _put_key(data, 317)

    full = decode_market_state("market", bytes(data))
    assert (full.base_mint, full.quote_mint) == (base_mint, quote_mint)
    assert (full.event_queue, full.bids, full.asks) == (event_queue, bids, asks)

    minimal = decode_minimal_market("market", bytes(data[253:349]))
    assert (minimal.event_queue, minimal.bids, minimal.asks) == (event_queue, bids, asks)
    assert minimal.base_mint is None


def test_decode_token_account() -> None:
    data = bytearray(TOKEN_ACCOUNT_SIZE)
    mint = _put_key(data, 0)
    owner = _put_key(data, 32)
    struct.pack_into("<Q", data, 64, 123_456)

    account = decode_token_account("acct", bytes(data))
    assert (account.mint, account.owner, account.amount) == (mint, owner, 123_456)


def test_decode_mint_authorities() -> None:
    data = bytearray(MINT_SIZE)
    struct.pack_into("<I", data, 0, 1)
    authority = _put_key(data, 4)
    struct.pack_into("<Q", data, 36, 10**9)
    struct.pack_into("<BB", data, 44, 6, 1)

    info = decode_mint(bytes(data))
    assert info.mint_authority == authority
    assert info.freeze_authority is None
    assert info.supply == 10**9
    assert info.decimals == 6
    assert info.is_initialized
