"""Data models shared by ingestion, analysis, strategy and execution."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Union


@dataclass(slots=True, frozen=True)
class PoolCandidate:
    """Snapshot of a newly observed AMM pool.

    Reserves are raw integer token units. A refreshed snapshot is a new object
    produced by :meth:`with_reserves`; instances are never mutated.
    """

    pool_id: str
    base_mint: str
    quote_mint: str
    base_decimals: int
    quote_decimals: int
    base_vault: str
    quote_vault: str
    market_id: str
    market_program_id: str
    lp_mint: str = ""
    open_orders: str = ""
    target_orders: str = ""
    withdraw_queue: str = ""
    lp_vault: str = ""
    base_reserve: int = 0
    quote_reserve: int = 0

    @property
    def base_reserve_ui(self) -> float:
        return self.base_reserve / (10 ** self.base_decimals)

    @property
    def quote_reserve_ui(self) -> float:
        return self.quote_reserve / (10 ** self.quote_decimals)

    def with_reserves(self, base_reserve: int, quote_reserve: int) -> "PoolCandidate":
        return replace(self, base_reserve=int(base_reserve), quote_reserve=int(quote_reserve))


@dataclass(slots=True, frozen=True)
class MarketSnapshot:
    """Order-book queue identities of an OpenBook market."""

    market_id: str
    event_queue: str
    bids: str
    asks: str
    base_mint: Optional[str] = None
    quote_mint: Optional[str] = None


@dataclass(slots=True, frozen=True)
class UnresolvedMarket:
    market_id: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ResolvedMarket:
    snapshot: MarketSnapshot

    @property
    def market_id(self) -> str:
        return self.snapshot.market_id


Market = Union[UnresolvedMarket, ResolvedMarket]


@dataclass(slots=True, frozen=True)
class PoolKeys:
    """Every account a Raydium v4 swap touches."""

    id: str
    base_mint: str
    quote_mint: str
    lp_mint: str
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    version: int
    program_id: str
    authority: str
    open_orders: str
    target_orders: str
    base_vault: str
    quote_vault: str
    withdraw_queue: str
    lp_vault: str
    market_version: int
    market_program_id: str
    market_id: str
    market_authority: str
    market_base_vault: str
    market_quote_vault: str
    market_bids: str
    market_asks: str
    market_event_queue: str


@dataclass(slots=True, frozen=True)
class TokenAccount:
    pubkey: str
    mint: str
    owner: str
    amount: int


@dataclass(slots=True)
class Position:
    """Wallet holding of one mint, created on the first buy attempt."""

    mint: str
    token_account: str
    market: Market
    entry_price: Optional[float] = None
    pool_keys: Optional[PoolKeys] = None
    last_updated: Optional[datetime] = None

    def attach_pool_keys(self, keys: PoolKeys) -> None:
        if self.pool_keys is not None and self.pool_keys.id != keys.id:
            raise ValueError(
                f"position {self.mint} is bound to pool {self.pool_keys.id}, not {keys.id}"
            )
        self.pool_keys = keys


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(slots=True, frozen=True)
class TradeAttempt:
    mint: str
    side: TradeSide
    started_at: float


class SentimentLevel(IntEnum):
    VERY_BEARISH = 1
    BEARISH = 2
    NEUTRAL = 3
    BULLISH = 4
    VERY_BULLISH = 5


@dataclass(slots=True, frozen=True)
class SentimentFactors:
    price_action: float = 0.0
    volume_trend: float = 0.0
    buy_vs_sell_pressure: float = 0.0
    liquidity_change: float = 0.0
    whale_activity: float = 0.0

    def as_tuple(self) -> tuple[float, float, float, float, float]:
        return (
            self.price_action,
            self.volume_trend,
            self.buy_vs_sell_pressure,
            self.liquidity_change,
            self.whale_activity,
        )


@dataclass(slots=True, frozen=True)
class SentimentResult:
    level: SentimentLevel
    score: float
    confidence: float
    factors: SentimentFactors
    timestamp: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class HorizonMetrics:
    """A value (price change % or volume) at the four standard horizons."""

    m5: float = 0.0
    h1: float = 0.0
    h6: float = 0.0
    h24: float = 0.0


@dataclass(slots=True, frozen=True)
class TxnCounts:
    buys: int = 0
    sells: int = 0


@dataclass(slots=True, frozen=True)
class MarketStatistics:
    price_change: HorizonMetrics = field(default_factory=HorizonMetrics)
    volume: HorizonMetrics = field(default_factory=HorizonMetrics)
    txns_m5: TxnCounts = field(default_factory=TxnCounts)
    txns_h1: TxnCounts = field(default_factory=TxnCounts)
    liquidity_usd: Optional[float] = None
    previous_liquidity: Optional[float] = None


@dataclass(slots=True, frozen=True)
class MarketConditions:
    is_bullish: bool
    confidence: float
    reason: str


@dataclass(slots=True, frozen=True)
class LiquidityAnalysis:
    liquidity: float
    slippage: float
    trading_score: float
    recommendation: str


@dataclass(slots=True, frozen=True)
class PriceImpactCheck:
    should_proceed: bool
    price_impact: float


@dataclass(slots=True, frozen=True)
class SecurityVerdict:
    is_safe: bool
    reason: Optional[str] = None


@dataclass(slots=True, frozen=True)
class GateResult:
    """Outcome of the decision pipeline."""

    approved: bool
    gate: Optional[str] = None
    reason: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def accept(cls, **context: Any) -> "GateResult":
        return cls(approved=True, context=context)

    @classmethod
    def reject(cls, gate: str, reason: str, **context: Any) -> "GateResult":
        return cls(approved=False, gate=gate, reason=reason, context=context)


class SellOutcome(str, Enum):
    SKIPPED = "skipped"
    NOTHING = "nothing"
    HELD = "held"
    SOLD = "sold"
    ABANDONED = "abandoned"


@dataclass(slots=True, frozen=True)
class BlockhashContext:
    blockhash: str
    last_valid_block_height: int


@dataclass(slots=True, frozen=True)
class AccountEvent:
    """One program-account change delivered by the websocket stream."""

    account_id: str
    data: bytes


@dataclass(slots=True, frozen=True)
class TokenBalanceChange:
    """Pre/post balance of one owner for one mint within a transaction."""

    owner: str
    mint: str
    pre_amount: Optional[int]
    post_amount: Optional[int]


__all__ = [
    "AccountEvent",
    "BlockhashContext",
    "GateResult",
    "HorizonMetrics",
    "LiquidityAnalysis",
    "Market",
    "MarketConditions",
    "MarketSnapshot",
    "MarketStatistics",
    "PoolCandidate",
    "PoolKeys",
    "Position",
    "PriceImpactCheck",
    "ResolvedMarket",
    "SecurityVerdict",
    "SellOutcome",
    "SentimentFactors",
    "SentimentLevel",
    "SentimentResult",
    "TokenAccount",
    "TokenBalanceChange",
    "TradeAttempt",
    "TradeSide",
    "TxnCounts",
    "UnresolvedMarket",
]
