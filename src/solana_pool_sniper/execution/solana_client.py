"""Async Solana RPC and websocket adapters."""

from __future__ import annotations

import math
from typing import Any, Awaitable, List, Optional, Sequence, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import DataSliceOpts, TokenAccountOpts, TxOpts
from solana.rpc.websocket_api import connect
from solders.pubkey import Pubkey
from solders.signature import Signature
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_never, wait_fixed

from ..config.settings import RPCConfig, get_app_config
from ..datalake.schemas import AccountEvent, BlockhashContext, TokenBalanceChange
from ..ingestion.interfaces import EventHandler
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import TOKEN_PROGRAM_ID
from ..utils.errors import UpstreamUnavailable

DEFAULT_COMPUTE_UNIT_PRICE = 100_000


def recommended_priority_fee(
    samples: Sequence[Tuple[int, int]],
    *,
    sample_size: int = 20,
    multiplier: float = 1.2,
    default: int = DEFAULT_COMPUTE_UNIT_PRICE,
) -> int:
    """``ceil(multiplier * median)`` of the newest ``sample_size`` ``(slot, fee)`` samples."""

    if not samples:
        return default
    newest = sorted(samples, key=lambda sample: sample[0], reverse=True)[:sample_size]
    fees = sorted(fee for _, fee in newest)
    median = fees[len(fees) // 2]
    return math.ceil(median * multiplier)


class SolanaRpc:
    """Account reader and transaction submitter over ``AsyncClient``.

    Every RPC failure surfaces as :class:`UpstreamUnavailable`.
    """

    def __init__(self, config: Optional[RPCConfig] = None, client: Optional[AsyncClient] = None) -> None:
        self._config = config or get_app_config().rpc
        self._commitment = Commitment(self._config.commitment)
        self._client = client or AsyncClient(
            str(self._config.primary_url),
            commitment=self._commitment,
            timeout=self._config.request_timeout,
        )
        self._logger = get_logger(__name__)

    async def _call(self, method: str, awaitable: Awaitable[Any]) -> Any:
        try:
            response = await awaitable
        except Exception as exc:  # noqa: BLE001
            METRICS.increment(f"rpc_errors.{method}")
            raise UpstreamUnavailable(method, str(exc)) from exc
        return response.value

    async def close(self) -> None:
        await self._client.close()

    async def get_account_info(
        self, account_id: str, data_slice: Optional[Tuple[int, int]] = None
    ) -> Optional[bytes]:
        opts = DataSliceOpts(offset=data_slice[0], length=data_slice[1]) if data_slice else None
        value = await self._call(
            "get_account_info",
            self._client.get_account_info(Pubkey.from_string(account_id), data_slice=opts),
        )
        return bytes(value.data) if value is not None else None

    async def get_multiple_accounts(self, account_ids: Sequence[str]) -> List[Optional[bytes]]:
        pubkeys = [Pubkey.from_string(account_id) for account_id in account_ids]
        values = await self._call("get_multiple_accounts", self._client.get_multiple_accounts(pubkeys))
        return [bytes(value.data) if value is not None else None for value in values]

    async def get_token_accounts_by_owner(self, owner: str) -> List[Tuple[str, bytes]]:
        values = await self._call(
            "get_token_accounts_by_owner",
            self._client.get_token_accounts_by_owner(
                Pubkey.from_string(owner),
                TokenAccountOpts(program_id=Pubkey.from_string(TOKEN_PROGRAM_ID)),
            ),
        )
        return [(str(keyed.pubkey), bytes(keyed.account.data)) for keyed in values]

    async def get_token_account_balance(self, account_id: str) -> Optional[float]:
        value = await self._call(
            "get_token_account_balance",
            self._client.get_token_account_balance(Pubkey.from_string(account_id)),
        )
        return value.ui_amount if value is not None else None

    async def get_signatures_for_address(self, address: str, limit: int) -> List[Tuple[str, Optional[int]]]:
        values = await self._call(
            "get_signatures_for_address",
            self._client.get_signatures_for_address(Pubkey.from_string(address), limit=limit),
        )
        return [(str(status.signature), status.block_time) for status in values]

    async def get_transaction_token_balances(self, signature: str) -> List[TokenBalanceChange]:
        value = await self._call(
            "get_transaction",
            self._client.get_transaction(
                Signature.from_string(signature), encoding="json", max_supported_transaction_version=0
            ),
        )
        meta = value.transaction.meta if value is not None else None
        if meta is None:
            return []
        pre = {
            (str(balance.owner), str(balance.mint)): int(balance.ui_token_amount.amount)
            for balance in meta.pre_token_balances or []
        }
        return [
            TokenBalanceChange(
                owner=str(balance.owner),
                mint=str(balance.mint),
                pre_amount=pre.get((str(balance.owner), str(balance.mint))),
                post_amount=int(balance.ui_token_amount.amount),
            )
            for balance in meta.post_token_balances or []
        ]

    async def send_raw_transaction(self, raw: bytes, *, skip_preflight: bool = False) -> str:
        opts = TxOpts(skip_preflight=skip_preflight, preflight_commitment=self._commitment)
        signature = await self._call("send_raw_transaction", self._client.send_raw_transaction(raw, opts=opts))
        return str(signature)

    async def confirm_transaction(self, signature: str, context: BlockhashContext) -> Optional[str]:
        try:
            response = await self._client.confirm_transaction(
                Signature.from_string(signature),
                commitment=self._commitment,
                last_valid_block_height=context.last_valid_block_height,
            )
        except Exception as exc:  # noqa: BLE001
            return str(exc)
        statuses = response.value
        status = statuses[0] if statuses else None
        if status is None:
            return "transaction status unavailable"
        return str(status.err) if status.err is not None else None

    async def get_latest_blockhash(self) -> BlockhashContext:
        value = await self._call("get_latest_blockhash", self._client.get_latest_blockhash(self._commitment))
        return BlockhashContext(blockhash=str(value.blockhash), last_valid_block_height=value.last_valid_block_height)

    async def get_recent_prioritization_fees(self) -> List[Tuple[int, int]]:
        values = await self._call(
            "get_recent_prioritization_fees", self._client.get_recent_prioritization_fees()
        )
        return [(fee.slot, fee.prioritization_fee) for fee in values or []]


class ProgramSubscriber:
    """Streams program-account changes over the RPC websocket, reconnecting on drop."""

    def __init__(self, config: Optional[RPCConfig] = None) -> None:
        self._config = config or get_app_config().rpc
        self._commitment = Commitment(self._config.commitment)
        self._logger = get_logger(__name__)

    def _log_reconnect(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        METRICS.increment("websocket_reconnects")
        self._logger.warning("Websocket dropped (%s), reconnecting", exc)

    async def subscribe(self, program_id: str, on_event: EventHandler) -> None:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            stop=stop_never,
            wait=wait_fixed(self._config.reconnect_delay_seconds),
            before_sleep=self._log_reconnect,
        ):
            with attempt:
                await self._stream(program_id, on_event)

    async def _stream(self, program_id: str, on_event: EventHandler) -> None:
        async with connect(str(self._config.websocket_url)) as websocket:
            await websocket.program_subscribe(
                Pubkey.from_string(program_id), commitment=self._commitment, encoding="base64"
            )
            self._logger.info("Subscribed to program %s", program_id)
            async for batched_msgs in websocket:
                for msg in batched_msgs:
                    if not hasattr(msg, "subscription"):
                        continue
                    keyed = msg.result.value
                    await on_event(AccountEvent(account_id=str(keyed.pubkey), data=bytes(keyed.account.data)))
        raise UpstreamUnavailable("websocket", f"subscription to {program_id} closed")


__all__ = ["DEFAULT_COMPUTE_UNIT_PRICE", "ProgramSubscriber", "SolanaRpc", "recommended_priority_fee"]
