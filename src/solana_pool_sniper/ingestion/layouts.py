"""Decoders for the raw account layouts the bot reads."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from solders.pubkey import Pubkey

from ..datalake.schemas import MarketSnapshot, PoolCandidate, TokenAccount
from ..utils.errors import MalformedAccountData

LIQUIDITY_STATE_V4_SIZE = 752
POOL_STATUS_SWAP = 6
MARKET_STATE_V3_SIZE = 388
MINT_SIZE = 82
TOKEN_ACCOUNT_SIZE = 165

# Raydium LIQUIDITY_STATE_LAYOUT_V4
_POOL_STATUS = 0
_POOL_BASE_DECIMAL = 32
_POOL_QUOTE_DECIMAL = 40
_POOL_OPEN_TIME = 224
_POOL_BASE_VAULT = 336
_POOL_QUOTE_VAULT = 368
_POOL_BASE_MINT = 400
_POOL_QUOTE_MINT = 432
_POOL_LP_MINT = 464
_POOL_OPEN_ORDERS = 496
_POOL_MARKET_ID = 528
_POOL_MARKET_PROGRAM_ID = 560
_POOL_TARGET_ORDERS = 592
_POOL_WITHDRAW_QUEUE = 624
_POOL_LP_VAULT = 656

# OpenBook MARKET_STATE_LAYOUT_V3
_MARKET_BASE_MINT = 53
_MARKET_QUOTE_MINT = 85
_MARKET_EVENT_QUEUE = 253
_MARKET_BIDS = 285
_MARKET_ASKS = 317

MINIMAL_MARKET_OFFSET = _MARKET_EVENT_QUEUE
MINIMAL_MARKET_LENGTH = 96


def _pubkey_at(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(data[offset : offset + 32]))


def _u64_at(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def _require_length(layout: str, data: bytes, minimum: int) -> None:
    if data is None or len(data) < minimum:
        size = 0 if data is None else len(data)
        raise MalformedAccountData(layout, f"expected at least {minimum} bytes, got {size}")


def decode_pool_state(pool_id: str, data: bytes) -> PoolCandidate:
    """Decode a Raydium AMM v4 pool account. Reserves start at zero."""

    _require_length("liquidity_state_v4", data, LIQUIDITY_STATE_V4_SIZE)
    try:
        return PoolCandidate(
            pool_id=pool_id,
            base_mint=_pubkey_at(data, _POOL_BASE_MINT),
            quote_mint=_pubkey_at(data, _POOL_QUOTE_MINT),
            base_decimals=_u64_at(data, _POOL_BASE_DECIMAL),
            quote_decimals=_u64_at(data, _POOL_QUOTE_DECIMAL),
            base_vault=_pubkey_at(data, _POOL_BASE_VAULT),
            quote_vault=_pubkey_at(data, _POOL_QUOTE_VAULT),
            market_id=_pubkey_at(data, _POOL_MARKET_ID),
            market_program_id=_pubkey_at(data, _POOL_MARKET_PROGRAM_ID),
            lp_mint=_pubkey_at(data, _POOL_LP_MINT),
            open_orders=_pubkey_at(data, _POOL_OPEN_ORDERS),
            target_orders=_pubkey_at(data, _POOL_TARGET_ORDERS),
            withdraw_queue=_pubkey_at(data, _POOL_WITHDRAW_QUEUE),
            lp_vault=_pubkey_at(data, _POOL_LP_VAULT),
        )
    except (ValueError, struct.error) as exc:
        raise MalformedAccountData("liquidity_state_v4", str(exc)) from exc


def pool_open_time(data: bytes) -> int:
    _require_length("liquidity_state_v4", data, LIQUIDITY_STATE_V4_SIZE)
    return _u64_at(data, _POOL_OPEN_TIME)


def pool_status(data: bytes) -> int:
    _require_length("liquidity_state_v4", data, LIQUIDITY_STATE_V4_SIZE)
    return _u64_at(data, _POOL_STATUS)


def decode_market_state(market_id: str, data: bytes) -> MarketSnapshot:
    """Decode a full OpenBook v3 market account."""

    _require_length("market_state_v3", data, MARKET_STATE_V3_SIZE)
    try:
        return MarketSnapshot(
            market_id=market_id,
            event_queue=_pubkey_at(data, _MARKET_EVENT_QUEUE),
            bids=_pubkey_at(data, _MARKET_BIDS),
            asks=_pubkey_at(data, _MARKET_ASKS),
            base_mint=_pubkey_at(data, _MARKET_BASE_MINT),
            quote_mint=_pubkey_at(data, _MARKET_QUOTE_MINT),
        )
    except ValueError as exc:
        raise MalformedAccountData("market_state_v3", str(exc)) from exc


def decode_minimal_market(market_id: str, data: bytes) -> MarketSnapshot:
    """Decode the 96-byte ``eventQueue|bids|asks`` slice of a market account."""

    _require_length("minimal_market_v3", data, MINIMAL_MARKET_LENGTH)
    try:
        return MarketSnapshot(
            market_id=market_id,
            event_queue=_pubkey_at(data, 0),
            bids=_pubkey_at(data, 32),
            asks=_pubkey_at(data, 64),
        )
    except ValueError as exc:
        raise MalformedAccountData("minimal_market_v3", str(exc)) from exc


def decode_token_account(pubkey: str, data: bytes) -> TokenAccount:
    _require_length("token_account", data, 72)
    try:
        return TokenAccount(
            pubkey=pubkey,
            mint=_pubkey_at(data, 0),
            owner=_pubkey_at(data, 32),
            amount=_u64_at(data, 64),
        )
    except (ValueError, struct.error) as exc:
        raise MalformedAccountData("token_account", str(exc)) from exc


@dataclass(slots=True, frozen=True)
class MintInfo:
    mint_authority: Optional[str]
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Optional[str]


def decode_mint(data: bytes) -> MintInfo:
    _require_length("mint", data, MINT_SIZE)
    try:
        mint_option, = struct.unpack_from("<I", data, 0)
        supply = _u64_at(data, 36)
        decimals, initialized = struct.unpack_from("<BB", data, 44)
        freeze_option, = struct.unpack_from("<I", data, 46)
        return MintInfo(
            mint_authority=_pubkey_at(data, 4) if mint_option == 1 else None,
            supply=supply,
            decimals=decimals,
            is_initialized=bool(initialized),
            freeze_authority=_pubkey_at(data, 50) if freeze_option == 1 else None,
        )
    except (ValueError, struct.error) as exc:
        raise MalformedAccountData("mint", str(exc)) from exc


__all__ = [
    "LIQUIDITY_STATE_V4_SIZE",
    "MARKET_STATE_V3_SIZE",
    "POOL_STATUS_SWAP",
    "MINIMAL_MARKET_LENGTH",
    "MINIMAL_MARKET_OFFSET",
    "MINT_SIZE",
    "MintInfo",
    "TOKEN_ACCOUNT_SIZE",
    "decode_market_state",
    "decode_minimal_market",
    "decode_mint",
    "decode_pool_state",
    "decode_token_account",
    "pool_open_time",
    "pool_status",
]
