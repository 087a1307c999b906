"""In-flight trade markers and the wallet position table."""

from __future__ import annotations

import time
from typing import Callable, Dict, Iterator, Optional

from ..datalake.schemas import Market, Position, ResolvedMarket, TradeAttempt, TradeSide
from ..utils.constants import utc_now


class TradeAttemptRegistry:
    """At most one in-flight buy or sell per mint.

    ``try_acquire`` is synchronous so callers can claim a mint before their
    first ``await``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._attempts: Dict[str, TradeAttempt] = {}
        self._clock = clock

    def try_acquire(self, mint: str, side: TradeSide) -> bool:
        if mint in self._attempts:
            return False
        self._attempts[mint] = TradeAttempt(mint=mint, side=side, started_at=self._clock())
        return True

    def release(self, mint: str) -> None:
        self._attempts.pop(mint, None)

    def get(self, mint: str) -> Optional[TradeAttempt]:
        return self._attempts.get(mint)

    def __contains__(self, mint: str) -> bool:
        return mint in self._attempts

    def __len__(self) -> int:
        return len(self._attempts)

    @property
    def count(self) -> int:
        return len(self._attempts)


class PositionBook:
    """Positions keyed by mint; entries live until restart."""

    def __init__(self) -> None:
        self._positions: Dict[str, Position] = {}

    def get(self, mint: str) -> Optional[Position]:
        return self._positions.get(mint)

    def __contains__(self, mint: str) -> bool:
        return mint in self._positions

    def __iter__(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def __len__(self) -> int:
        return len(self._positions)

    def create(self, mint: str, token_account: str, market: Market) -> Position:
        position = Position(mint=mint, token_account=token_account, market=market, last_updated=utc_now())
        self._positions[mint] = position
        return position

    def resolve_market(self, position: Position, market: ResolvedMarket) -> Position:
        position.market = market
        position.last_updated = utc_now()
        return position

    def record_entry_price(self, mint: str, price: float) -> None:
        position = self._positions.get(mint)
        if position is None:
            return
        position.entry_price = price
        position.last_updated = utc_now()


__all__ = ["PositionBook", "TradeAttemptRegistry"]
