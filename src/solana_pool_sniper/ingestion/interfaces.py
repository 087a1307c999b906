"""Narrow interfaces the trading core uses to reach the outside world."""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from ..datalake.schemas import AccountEvent, BlockhashContext, PoolKeys, TokenBalanceChange

EventHandler = Callable[[AccountEvent], Awaitable[None]]


class ChainEventSource(Protocol):
    async def subscribe(self, program_id: str, on_event: EventHandler) -> None:
        """Deliver account changes of ``program_id`` until cancelled."""
        ...


class ChainAccountReader(Protocol):
    async def get_account_info(
        self, account_id: str, data_slice: Optional[Tuple[int, int]] = None
    ) -> Optional[bytes]:
        ...

    async def get_multiple_accounts(self, account_ids: Sequence[str]) -> List[Optional[bytes]]:
        ...

    async def get_token_accounts_by_owner(self, owner: str) -> List[Tuple[str, bytes]]:
        ...

    async def get_token_account_balance(self, account_id: str) -> Optional[float]:
        """UI amount held by a token account."""
        ...

    async def get_signatures_for_address(self, address: str, limit: int) -> List[Tuple[str, Optional[int]]]:
        """``(signature, block_time)`` pairs, newest first."""
        ...

    async def get_transaction_token_balances(self, signature: str) -> List[TokenBalanceChange]:
        ...


class TransactionSubmitter(Protocol):
    async def send_raw_transaction(self, raw: bytes, *, skip_preflight: bool = False) -> str:
        ...

    async def confirm_transaction(self, signature: str, context: BlockhashContext) -> Optional[str]:
        """Wait for finality; returns the on-chain error, or ``None`` on success."""
        ...

    async def get_latest_blockhash(self) -> BlockhashContext:
        ...

    async def get_recent_prioritization_fees(self) -> List[Tuple[int, int]]:
        """``(slot, micro_lamports)`` samples."""
        ...


class SwapInstructionBuilder(Protocol):
    """Builds and signs fixed-input swap transactions."""

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
        ...

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
        ...


class PriceSource(Protocol):
    name: str

    async def resolve(self, mint: str) -> Optional[float]:
        ...


__all__ = [
    "ChainAccountReader",
    "ChainEventSource",
    "EventHandler",
    "PriceSource",
    "SwapInstructionBuilder",
    "TransactionSubmitter",
]
