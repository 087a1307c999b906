"""Buy, confirmation and sell state machines for sniped pools."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..analysis.liquidity import calculate_optimal_swap_amount
from ..analysis.market_conditions import analyze_market_conditions, calculate_position_size
from ..config.settings import AppConfig, get_app_config
from ..datalake.schemas import (
    BlockhashContext,
    MarketSnapshot,
    PoolCandidate,
    PoolKeys,
    Position,
    ResolvedMarket,
    SellOutcome,
    TokenAccount,
    TradeSide,
    UnresolvedMarket,
)
from ..datalake.storage import ProfitStore
from ..ingestion.interfaces import SwapInstructionBuilder, TransactionSubmitter
from ..ingestion.market_data import MarketDataGateway
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..strategy.pipeline import DecisionPipeline, quote_amount_raw
from ..strategy.risk import SessionRiskState
from ..utils.constants import QUOTE_TOKENS
from ..utils.errors import SniperError, TransactionFailed, UpstreamUnavailable
from .positions import PositionBook, TradeAttemptRegistry
from .solana_client import recommended_priority_fee
from .transaction_builder import associated_token_address


class ExecutionCore:
    """Owns the in-flight attempt registry and the position table.

    Every buy or sell claims its mint in :class:`TradeAttemptRegistry`
    before its first ``await``. A buy keeps the claim until its detached
    confirmation finishes; a sell keeps it for the whole retry loop.
    """

    def __init__(
        self,
        *,
        owner: str,
        quote_token_account: str,
        gateway: MarketDataGateway,
        submitter: TransactionSubmitter,
        builder: SwapInstructionBuilder,
        session: SessionRiskState,
        ledger: ProfitStore,
        pipeline: DecisionPipeline,
        attempts: Optional[TradeAttemptRegistry] = None,
        positions: Optional[PositionBook] = None,
        config: Optional[AppConfig] = None,
        dry_run: bool = False,
    ) -> None:
        self._owner = owner
        self._quote_token_account = quote_token_account
        self._gateway = gateway
        self._submitter = submitter
        self._builder = builder
        self._session = session
        self._ledger = ledger
        self._pipeline = pipeline
        self._attempts = attempts if attempts is not None else TradeAttemptRegistry()
        self._positions = positions if positions is not None else PositionBook()
        self._config = config or get_app_config()
        self._dry_run = dry_run
        quote = self._config.trading.quote_mint
        self._quote_mint = QUOTE_TOKENS[quote.value][0] if quote is not None else None
        self._confirmations: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @property
    def attempts(self) -> TradeAttemptRegistry:
        return self._attempts

    @property
    def positions(self) -> PositionBook:
        return self._positions

    @property
    def pending_confirmations(self) -> int:
        return len(self._confirmations)

    def adopt_token_account(self, account: TokenAccount) -> Optional[Position]:
        """Track a wallet token account found at startup or on refresh."""

        if account.mint == self._quote_mint or account.mint in self._positions:
            return None
        return self._positions.create(account.mint, account.pubkey, UnresolvedMarket())

    def prepare_position(self, market: MarketSnapshot) -> Optional[Position]:
        """Pre-create the position for a freshly listed market's base mint."""

        mint = market.base_mint
        if mint is None or mint in self._positions:
            return None
        return self._positions.create(
            mint, associated_token_address(self._owner, mint), ResolvedMarket(market)
        )

    async def wait_for_confirmations(self) -> None:
        if self._confirmations:
            await asyncio.gather(*list(self._confirmations), return_exceptions=True)

    # ------------------------------------------------------------------ buy
    async def buy(self, candidate: PoolCandidate) -> Optional[str]:
        """Submit a buy for ``candidate``; returns the signature or ``None``."""

        mint = candidate.base_mint
        if not self._attempts.try_acquire(mint, TradeSide.BUY):
            self._logger.debug("Buy for %s already in flight", mint)
            return None

        with correlation_scope(mint):
            try:
                submitted = await self._submit_buy(candidate)
            except Exception as exc:  # noqa: BLE001
                self._attempts.release(mint)
                METRICS.increment("buys_failed")
                self._logger.error("Failed to buy %s: %s", mint, exc, extra={"pool": candidate.pool_id})
                return None
            if submitted is None:
                self._attempts.release(mint)
                return None

            signature, blockhash, keys = submitted
            self._session.record_trade()
            METRICS.increment("buys_submitted")
            self._logger.info(
                "Buy submitted for %s", mint, extra={"signature": signature, "pool": candidate.pool_id}
            )
            task = asyncio.create_task(self.confirm_buy(mint, signature, blockhash, keys))
            self._confirmations.add(task)
            task.add_done_callback(self._confirmations.discard)
            return signature

    async def _resolve_position(self, candidate: PoolCandidate) -> Position:
        mint = candidate.base_mint
        position = self._positions.get(mint)
        if position is None:
            position = self._positions.create(
                mint, associated_token_address(self._owner, mint), UnresolvedMarket(candidate.market_id)
            )
        if not isinstance(position.market, ResolvedMarket) or position.market.market_id != candidate.market_id:
            snapshot = await self._gateway.get_market_snapshot(candidate.market_id)
            self._positions.resolve_market(position, ResolvedMarket(snapshot))
        return position

    async def _position_size(self, mint: str) -> float:
        trading = self._config.trading
        base_amount = trading.quote_amount or 0.0
        if not trading.dynamic_position_sizing:
            return base_amount
        if await self._gateway.get_token_price(mint) is None:
            return base_amount
        stats = await self._gateway.get_market_statistics(mint)
        conditions = analyze_market_conditions(stats.price_change, stats.volume, stats.txns_m5, stats.txns_h1)
        size = self._session.adjust_position_size(calculate_position_size(base_amount, conditions))
        self._logger.info(
            "Dynamic position size for %s: %.6f (%s)",
            mint,
            size,
            conditions.reason,
            extra={"confidence": conditions.confidence, "bullish": conditions.is_bullish},
        )
        return size

    async def _compute_unit_price(self) -> int:
        execution = self._config.execution
        try:
            samples = await self._submitter.get_recent_prioritization_fees()
        except UpstreamUnavailable as exc:
            self._logger.error("Failed to get optimal compute unit price: %s", exc)
            return execution.default_compute_unit_price
        return recommended_priority_fee(
            samples,
            sample_size=execution.priority_fee_sample_size,
            multiplier=execution.priority_fee_multiplier,
            default=execution.default_compute_unit_price,
        )

    async def _send(self, raw: bytes, *, skip_preflight: bool) -> str:
        execution = self._config.execution
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(UpstreamUnavailable),
            stop=stop_after_attempt(execution.submit_attempts),
            wait=wait_fixed(execution.submit_retry_interval_seconds),
            reraise=True,
        ):
            with attempt:
                return await self._submitter.send_raw_transaction(raw, skip_preflight=skip_preflight)
        raise UpstreamUnavailable("send_raw_transaction", "no submission attempt made")

    async def _submit_buy(self, candidate: PoolCandidate):
        mint = candidate.base_mint
        position = await self._resolve_position(candidate)

        size = await self._position_size(mint)
        if size <= 0:
            self._logger.info("Position size for %s is %.6f, skipping buy", mint, size)
            return None

        optimal = calculate_optimal_swap_amount(
            candidate.quote_reserve, self._config.trading.max_slippage_percent
        )
        amount_in = int(min(quote_amount_raw(size, candidate.quote_decimals), optimal))
        if amount_in <= 0:
            self._logger.info("Swap amount for %s clamped to zero, skipping buy", mint)
            return None

        market = position.market
        if not isinstance(market, ResolvedMarket):
            raise SniperError(f"Market for {mint} is unresolved")
        keys = self._gateway.get_pool_keys(candidate.pool_id, candidate, market.snapshot)
        position.attach_pool_keys(keys)

        blockhash = await self._submitter.get_latest_blockhash()
        compute_unit_price = await self._compute_unit_price()
        raw = self._builder.build_buy(
            keys,
            amount_in=amount_in,
            source_account=self._quote_token_account,
            destination_account=position.token_account,
            blockhash=blockhash,
            compute_unit_price=compute_unit_price,
        )
        if self._dry_run:
            self._logger.info(
                "Dry run: built buy of %d for %s", amount_in, mint, extra={"pool": candidate.pool_id, "bytes": len(raw)}
            )
            return None
        signature = await self._send(raw, skip_preflight=True)
        return signature, blockhash, keys

    async def confirm_buy(self, mint: str, signature: str, blockhash: BlockhashContext, keys: PoolKeys) -> bool:
        """Await finality and record the entry price; always frees the mint."""

        try:
            error = await self._submitter.confirm_transaction(signature, blockhash)
            if error is not None:
                raise TransactionFailed(signature, error)
            base_balance, quote_balance = await self._gateway.get_vault_balances(keys.base_vault, keys.quote_vault)
            if base_balance and quote_balance is not None:
                entry_price = quote_balance / base_balance
                self._positions.record_entry_price(mint, entry_price)
            else:
                entry_price = None
            METRICS.increment("buys_confirmed")
            self._logger.info(
                "Confirmed buy tx for %s", mint, extra={"signature": signature, "entry_price": entry_price}
            )
            return True
        except TransactionFailed as exc:
            METRICS.increment("buys_failed")
            self._logger.warning("Buy for %s failed to confirm: %s", mint, exc.error, extra={"signature": signature})
            return False
        except Exception as exc:  # noqa: BLE001
            METRICS.increment("buys_failed")
            self._logger.error("Error confirming buy for %s: %s", mint, exc, extra={"signature": signature})
            return False
        finally:
            self._attempts.release(mint)

    # ----------------------------------------------------------------- sell
    async def sell(self, mint: str, amount: int, current_price: float) -> SellOutcome:
        """Take profit or cut loss on ``mint`` at ``current_price``."""

        if not self._pipeline.evaluate_sell_window().approved:
            return SellOutcome.SKIPPED
        if not self._attempts.try_acquire(mint, TradeSide.SELL):
            self._logger.debug("Trade for %s already in flight, skipping sell", mint)
            return SellOutcome.SKIPPED
        with correlation_scope(mint):
            try:
                return await self._sell(mint, amount, current_price)
            finally:
                self._attempts.release(mint)

    async def _sell(self, mint: str, amount: int, current_price: float) -> SellOutcome:
        position = self._positions.get(mint)
        if position is None or position.pool_keys is None or amount <= 0 or not position.entry_price:
            return SellOutcome.NOTHING

        trading = self._config.trading
        net_change = (current_price - position.entry_price) / position.entry_price
        if trading.stop_loss < net_change < trading.take_profit:
            self._logger.debug("Holding %s at %.2f%%", mint, net_change * 100)
            return SellOutcome.HELD

        if self._dry_run:
            self._logger.info("Dry run: would sell %s at %.2f%%", mint, net_change * 100)
            return SellOutcome.HELD

        keys = position.pool_keys
        for attempt in range(1, trading.max_sell_retries + 1):
            try:
                blockhash = await self._submitter.get_latest_blockhash()
                compute_unit_price = await self._compute_unit_price()
                raw = self._builder.build_sell(
                    keys,
                    amount_in=amount,
                    source_account=position.token_account,
                    destination_account=self._quote_token_account,
                    blockhash=blockhash,
                    compute_unit_price=compute_unit_price,
                )
                signature = await self._submitter.send_raw_transaction(raw)
                error = await self._submitter.confirm_transaction(signature, blockhash)
                if error is not None:
                    raise TransactionFailed(signature, error)
            except TransactionFailed as exc:
                self._logger.warning(
                    "Sell attempt %d for %s failed: %s", attempt, mint, exc.error, extra={"signature": exc.signature}
                )
                continue
            except Exception as exc:  # noqa: BLE001
                self._logger.warning("Sell attempt %d for %s raised: %s", attempt, mint, exc)
                continue

            profit_percent = net_change * 100
            total = await self._ledger.add(profit_percent)
            self._session.record_profit(profit_percent)
            METRICS.increment("sells_confirmed")
            self._logger.info(
                "Sold %s at %.2f%%",
                mint,
                profit_percent,
                extra={"signature": signature, "total_profit": total},
            )
            return SellOutcome.SOLD

        METRICS.increment("sells_abandoned")
        self._logger.warning("Giving up on selling %s after %d attempts", mint, trading.max_sell_retries)
        return SellOutcome.ABANDONED

    async def auto_sell_sweep(self) -> Dict[str, SellOutcome]:
        """Re-evaluate every priced wallet holding against the exit thresholds."""

        try:
            accounts = await self._gateway.get_token_accounts(self._owner)
        except UpstreamUnavailable as exc:
            self._logger.error("Auto-sell sweep could not list token accounts: %s", exc)
            return {}

        outcomes: Dict[str, SellOutcome] = {}
        for account in accounts:
            position = self._positions.get(account.mint)
            if position is None or position.entry_price is None:
                continue
            try:
                price = await self._gateway.get_token_price(account.mint)
                if price is None:
                    continue
                outcomes[account.mint] = await self.sell(account.mint, account.amount, price)
            except Exception as exc:  # noqa: BLE001
                self._logger.error("Auto-sell failed for %s: %s", account.mint, exc)
        return outcomes


__all__ = ["ExecutionCore"]
