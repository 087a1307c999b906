"""File-backed allow-list (snipe list) of mints the bot may buy."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Callable, FrozenSet, Optional

from ..config.settings import SnipeListConfig, get_app_config
from ..monitoring.logger import get_logger


class SnipeList:
    """Newline-delimited list of mint addresses, reloaded at most once per interval."""

    def __init__(
        self,
        config: Optional[SnipeListConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or get_app_config().snipe_list
        self._clock = clock
        self._mints: FrozenSet[str] = frozenset()
        self._loaded_at: Optional[float] = None
        self._logger = get_logger(__name__)

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def mints(self) -> FrozenSet[str]:
        return self._mints

    def _read(self) -> Optional[FrozenSet[str]]:
        path = Path(self._config.path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            self._logger.warning("Failed to read snipe list %s: %s", path, exc)
            return None
        return frozenset(line.strip() for line in text.splitlines() if line.strip())

    def load(self, *, force: bool = False) -> bool:
        """Reload from disk if due. Returns ``True`` when a read was attempted."""

        if not self._config.enabled:
            return False
        now = self._clock()
        if (
            not force
            and self._loaded_at is not None
            and now - self._loaded_at < self._config.refresh_interval_seconds
        ):
            return False
        self._loaded_at = now
        mints = self._read()
        if mints is None:
            return True
        if len(mints) != len(self._mints):
            self._logger.info("Loaded snipe list with %d mints", len(mints))
        self._mints = mints
        return True

    async def refresh(self) -> bool:
        return await asyncio.to_thread(self.load)

    def should_buy(self, mint: str) -> bool:
        if not self._config.enabled:
            return True
        self.load()
        return mint in self._mints


__all__ = ["SnipeList"]
