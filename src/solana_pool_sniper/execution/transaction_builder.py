"""Builds and signs Raydium v4 fixed-input swap transactions."""

from __future__ import annotations

import struct
from typing import List

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    CloseAccountParams,
    close_account,
    create_idempotent_associated_token_account,
    get_associated_token_address,
)

from ..datalake.schemas import BlockhashContext, PoolKeys
from ..monitoring.logger import get_logger
from .wallet import Wallet

SWAP_BASE_IN = 9


def associated_token_address(owner: str, mint: str) -> str:
    return str(get_associated_token_address(Pubkey.from_string(owner), Pubkey.from_string(mint)))


def _meta(address: str, *, writable: bool = False, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=Pubkey.from_string(address), is_signer=signer, is_writable=writable)


def swap_base_in_instruction(
    keys: PoolKeys,
    *,
    amount_in: int,
    min_amount_out: int,
    source_account: str,
    destination_account: str,
    owner: str,
) -> Instruction:
    """Raydium AMM v4 ``swapBaseIn`` with the OpenBook v3 account list."""

    data = struct.pack("<BQQ", SWAP_BASE_IN, int(amount_in), int(min_amount_out))
    accounts = [
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        _meta(keys.id, writable=True),
        _meta(keys.authority),
        _meta(keys.open_orders, writable=True),
        _meta(keys.target_orders, writable=True),
        _meta(keys.base_vault, writable=True),
        _meta(keys.quote_vault, writable=True),
        _meta(keys.market_program_id),
        _meta(keys.market_id, writable=True),
        _meta(keys.market_bids, writable=True),
        _meta(keys.market_asks, writable=True),
        _meta(keys.market_event_queue, writable=True),
        _meta(keys.market_base_vault, writable=True),
        _meta(keys.market_quote_vault, writable=True),
        _meta(keys.market_authority),
        _meta(source_account, writable=True),
        _meta(destination_account, writable=True),
        _meta(owner, signer=True),
    ]
    return Instruction(Pubkey.from_string(keys.program_id), data, accounts)


class RaydiumSwapBuilder:
    """Signs swaps with the bot wallet; min-out is always zero."""

    def __init__(self, wallet: Wallet, *, compute_unit_limit: int = 200_000) -> None:
        self._wallet = wallet
        self._compute_unit_limit = compute_unit_limit
        self._logger = get_logger(__name__)

    @property
    def owner(self) -> str:
        return str(self._wallet.public_key)

    def _compile(self, instructions: List[Instruction], blockhash: BlockhashContext) -> bytes:
        message = MessageV0.try_compile(
            self._wallet.public_key,
            instructions,
            [],
            Hash.from_string(blockhash.blockhash),
        )
        return bytes(VersionedTransaction(message, [self._wallet.keypair]))

    def _budget(self, compute_unit_price: int) -> List[Instruction]:
        return [
            set_compute_unit_price(int(compute_unit_price)),
            set_compute_unit_limit(self._compute_unit_limit),
        ]

    def build_buy(
        self,
        keys: PoolKeys,
        *,
        amount_in: int,
        source_account: str,
        destination_account: str,
        blockhash: BlockhashContext,
        compute_unit_price: int,
    ) -> bytes:
        owner = self._wallet.public_key
        instructions = self._budget(compute_unit_price)
        instructions.append(
            create_idempotent_associated_token_account(owner, owner, Pubkey.from_string(keys.base_mint))
        )
        instructions.append(
            swap_base_in_instruction(
                keys,
                amount_in=amount_in,
                min_amount_out=0,
                source_account=source_account,
                destination_account=destination_account,
                owner=str(owner),
            )
        )
        return self._compile(instructions, blockhash)

    def build_sell(
        self,
        keys: PoolKeys,
        *,
        amount_in: int,
        source_account: str,
        destination_account: str,
        blockhash: BlockhashContext,
        compute_unit_price: int,
    ) -> bytes:
        owner = self._wallet.public_key
        instructions = self._budget(compute_unit_price)
        instructions.append(
            swap_base_in_instruction(
                keys,
                amount_in=amount_in,
                min_amount_out=0,
                source_account=source_account,
                destination_account=destination_account,
                owner=str(owner),
            )
        )
        instructions.append(
            close_account(
                CloseAccountParams(
                    program_id=TOKEN_PROGRAM_ID,
                    account=Pubkey.from_string(source_account),
                    dest=owner,
                    owner=owner,
                )
            )
        )
        return self._compile(instructions, blockhash)


__all__ = ["RaydiumSwapBuilder", "associated_token_address", "swap_base_in_instruction"]
