"""Durable cumulative-profit ledger."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Optional, Protocol

from ..monitoring.logger import get_logger

PROFIT_KEY = "totalProfit"


class ProfitStore(Protocol):
    """Interface for anything that can accumulate realized profit."""

    async def add(self, profit_percent: float) -> Optional[float]:
        ...


class ProfitLedger:
    """Read-modify-write JSON file holding ``{"totalProfit": <number>}``.

    A read or parse failure aborts the update and leaves the file untouched.
    Writes go to a sibling temp file that replaces the ledger atomically.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        """Create an empty ledger if none exists yet."""

        if self._path.exists():
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._write({PROFIT_KEY: 0.0})
        self._logger.info("Created profit ledger at %s", self._path)

    def read_total(self) -> Optional[float]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as exc:
            self._logger.error("Error reading profit ledger %s: %s", self._path, exc)
            return None
        except ValueError as exc:
            self._logger.error("Error parsing profit ledger %s: %s", self._path, exc)
            return None
        total = payload.get(PROFIT_KEY) if isinstance(payload, dict) else None
        if not isinstance(total, (int, float)) or isinstance(total, bool):
            self._logger.error("Profit ledger %s has no numeric %s", self._path, PROFIT_KEY)
            return None
        return float(total)

    def _write(self, payload: dict) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _update(self, profit_percent: float) -> Optional[float]:
        total = self.read_total()
        if total is None:
            return None
        new_total = total + profit_percent
        try:
            self._write({PROFIT_KEY: new_total})
        except OSError as exc:
            self._logger.error("Error writing profit ledger %s: %s", self._path, exc)
            return None
        self._logger.info("Profit updated", extra={"total_profit": new_total, "delta": profit_percent})
        return new_total

    async def add(self, profit_percent: float) -> Optional[float]:
        """Add ``profit_percent`` to the total; returns the new total or ``None``."""

        async with self._lock:
            return await asyncio.to_thread(self._update, profit_percent)


__all__ = ["PROFIT_KEY", "ProfitLedger", "ProfitStore"]
