"""Wallet helpers for loading the trading keypair."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config.settings import WalletConfig, get_app_config
from ..utils.errors import ConfigurationMissing


@dataclass(slots=True)
class Wallet:
    """Wrapper around a Solana keypair."""

    keypair: Keypair

    @property
    def public_key(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())


def load_wallet(config: Optional[WalletConfig] = None) -> Wallet:
    """Load from a base58 secret key or a JSON keypair file (``solana-keygen`` format)."""

    cfg = config or get_app_config().wallet
    secret_key: Optional[bytes] = None
    try:
        if cfg.private_key:
            secret_key = base58.b58decode(cfg.private_key.strip())
        elif cfg.keypair_path:
            path = Path(cfg.keypair_path).expanduser()
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if isinstance(data, list):
                secret_key = bytes(data)
        if secret_key is None:
            raise ConfigurationMissing(["wallet.private_key|wallet.keypair_path"])
        keypair = Keypair.from_bytes(secret_key)
    except (OSError, ValueError) as exc:
        raise ConfigurationMissing(["wallet.private_key|wallet.keypair_path"], detail=str(exc)) from exc
    return Wallet(keypair=keypair)


__all__ = ["Wallet", "load_wallet"]
