"""Mint-authority and freeze-authority safety checks."""

from __future__ import annotations

from typing import Optional

from ..config.settings import SecurityConfig, get_app_config
from ..datalake.schemas import SecurityVerdict
from ..ingestion.interfaces import ChainAccountReader
from ..ingestion.layouts import decode_mint
from ..monitoring.logger import get_logger
from ..utils.cache import TTL_SLOW, ReadThroughCache, cache_key
from ..utils.errors import MalformedAccountData, UpstreamUnavailable

SAFE = SecurityVerdict(is_safe=True)
NO_MINT_DATA = SecurityVerdict(is_safe=False, reason="Could not retrieve mint data")
MINTABLE = SecurityVerdict(is_safe=False, reason="Token is mintable (has mint authority)")
FREEZABLE = SecurityVerdict(is_safe=False, reason="Token is freezable (has freeze authority)")
CHECK_FAILED = SecurityVerdict(is_safe=False, reason="Error checking token security")


class MintSafetyChecker:
    def __init__(
        self,
        reader: ChainAccountReader,
        cache: ReadThroughCache,
        config: Optional[SecurityConfig] = None,
        *,
        ttl: float = TTL_SLOW,
    ) -> None:
        self._reader = reader
        self._cache = cache
        self._config = config or get_app_config().security
        self._ttl = ttl
        self._logger = get_logger(__name__)

    @property
    def checks_enabled(self) -> bool:
        cfg = self._config
        return cfg.check_if_mint_is_renounced or cfg.check_if_mint_is_freezable or cfg.check_if_mint_is_mintable

    def _judge(self, data: Optional[bytes]) -> SecurityVerdict:
        if not data:
            return NO_MINT_DATA
        mint = decode_mint(data)
        cfg = self._config
        if cfg.check_if_mint_is_renounced and mint.mint_authority is not None:
            return MINTABLE
        if cfg.check_if_mint_is_freezable and mint.freeze_authority is not None:
            return FREEZABLE
        if cfg.check_if_mint_is_mintable and mint.mint_authority is not None:
            return MINTABLE
        return SAFE

    async def check(self, mint: str) -> SecurityVerdict:
        """Verdicts, including "no data", are cached; lookup failures are not."""

        if not self.checks_enabled:
            return SAFE
        key = cache_key("security", mint)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            data = await self._reader.get_account_info(mint)
            verdict = self._judge(data)
        except (UpstreamUnavailable, MalformedAccountData) as exc:
            self._logger.error("Failed to check token security for %s: %s", mint, exc)
            return CHECK_FAILED
        self._cache.set(key, verdict, self._ttl)
        return verdict


__all__ = ["MintSafetyChecker"]
