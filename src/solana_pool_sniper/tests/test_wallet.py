import json

import base58
import pytest
from solders.keypair import Keypair

from solana_pool_sniper.config.settings import WalletConfig
from solana_pool_sniper.execution.wallet import load_wallet
from solana_pool_sniper.utils.errors import ConfigurationMissing


def test_load_from_base58_private_key() -> None:
    keypair = Keypair()
    wallet = load_wallet(WalletConfig(private_key=base58.b58encode(bytes(keypair)).decode()))
    assert wallet.public_key == keypair.pubkey()


def test_load_from_keypair_file(tmp_path) -> None:
    keypair = Keypair()
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))))

    wallet = load_wallet(WalletConfig(keypair_path=path))
    assert wallet.address == str(keypair.pubkey())


def test_missing_or_broken_keys_are_reported(tmp_path) -> None:
    with pytest.raises(ConfigurationMissing):
        load_wallet(WalletConfig())
    with pytest.raises(ConfigurationMissing):
        load_wallet(WalletConfig(keypair_path=tmp_path / "absent.json"))
    with pytest.raises(ConfigurationMissing):
        load_wallet(WalletConfig(private_key="not-a-key"))
