from __future__ import annotations

from pathlib import Path

import pytest

from solana_pool_sniper.config import settings
from solana_pool_sniper.datalake.schemas import SentimentLevel
from solana_pool_sniper.utils.errors import ConfigurationMissing

_ENV_VARS = (
    "RPC__PRIMARY_URL",
    "RPC__WEBSOCKET_URL",
    "RPC__REQUEST_TIMEOUT",
    "WALLET__PRIVATE_KEY",
    "WALLET__KEYPAIR_PATH",
    "TRADING__QUOTE_MINT",
    "TRADING__QUOTE_AMOUNT",
    "TRADING__TAKE_PROFIT",
    "TRADING__STOP_LOSS",
    "SENTIMENT__REQUIRED_LEVEL",
    "RISK__RISK_LEVEL",
    "BOT_MODE",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_CONFIG_FILE", str(tmp_path / "absent.toml"))
    settings.get_app_config.cache_clear()
    yield
    settings.get_app_config.cache_clear()


def test_profiles_merge_and_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_path = tmp_path / "app.toml"
    config_path.write_text(
        """
[default.mode]
active = "dry_run"

[default.rpc]
primary_url = "https://api.default"
websocket_url = "wss://api.default"
request_timeout = 9.5

[default.trading]
quote_mint = "wsol"
quote_amount = 0.1

[live.mode]
active = "live"

[live.rpc]
primary_url = "https://api.mainnet"

[live.trading]
quote_amount = 0.5
"""
    )
    monkeypatch.setenv("APP_CONFIG_FILE", str(config_path))
    monkeypatch.setenv("BOT_MODE", "live")
    monkeypatch.setenv("RPC__REQUEST_TIMEOUT", "18")
    monkeypatch.setenv("WALLET__PRIVATE_KEY", "not-used-here")

    cfg = settings.get_app_config()

    assert cfg.mode.active == settings.AppMode.LIVE
    assert cfg.mode.config_file == config_path
    assert "api.mainnet" in str(cfg.rpc.primary_url)
    assert "api.default" in str(cfg.rpc.websocket_url)
    assert cfg.rpc.request_timeout == pytest.approx(18.0)
    assert cfg.trading.quote_mint == settings.QuoteAsset.WSOL
    assert cfg.trading.quote_amount == pytest.approx(0.5)
    assert settings.missing_options(cfg) == []


def test_missing_required_options_are_reported() -> None:
    with pytest.raises(ConfigurationMissing) as excinfo:
        settings.load_app_config()
    assert set(excinfo.value.options) == set(settings.REQUIRED_OPTIONS)


def test_either_wallet_option_satisfies_requirement(tmp_path: Path) -> None:
    cfg = settings.load_app_config(
        rpc={"primary_url": "https://rpc.example", "websocket_url": "wss://rpc.example"},
        wallet={"keypair_path": str(tmp_path / "id.json")},
        trading={"quote_mint": "USDC", "quote_amount": 5},
    )
    assert cfg.trading.quote_mint == settings.QuoteAsset.USDC


def test_invalid_values_become_configuration_missing() -> None:
    with pytest.raises(ConfigurationMissing) as excinfo:
        settings.load_app_config(trading={"take_profit": 0.1, "stop_loss": 0.2})
    assert any(option.startswith("trading") for option in excinfo.value.options)


def test_named_levels_are_parsed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SENTIMENT__REQUIRED_LEVEL", "bullish")
    monkeypatch.setenv("RISK__RISK_LEVEL", "HIGH")
    cfg = settings.AppConfig()
    assert cfg.sentiment.required_level == SentimentLevel.BULLISH
    assert cfg.risk.risk_level == settings.RiskLevel.HIGH
