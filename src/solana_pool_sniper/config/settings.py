"""Configuration management for the pool sniper."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, AnyUrl, BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..datalake.schemas import SentimentLevel
from ..utils.errors import ConfigurationMissing

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "BOT_MODE"


class AppMode(str, Enum):
    """Supported runtime modes."""

    DRY_RUN = "dry_run"
    LIVE = "live"
    DEVNET = "devnet"


class QuoteAsset(str, Enum):
    """Quote assets a pool must be paired against to be considered."""

    WSOL = "WSOL"
    USDC = "USDC"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the ``[default]`` tables with the tables of the requested mode."""

    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.DRY_RUN.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.DRY_RUN.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict) or not payload:
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class ModeConfig(BaseModel):
    """Runtime mode and cluster selection."""

    active: AppMode = Field(default=AppMode.DRY_RUN)
    cluster: str = Field(default="mainnet-beta")
    config_file: Optional[Path] = None


class RPCConfig(BaseModel):
    """RPC and websocket endpoints."""

    primary_url: Optional[AnyHttpUrl] = None
    websocket_url: Optional[AnyUrl] = None
    commitment: str = Field(default="confirmed")
    request_timeout: float = Field(default=12.0, ge=1.0, le=60.0)
    reconnect_delay_seconds: float = Field(default=2.0, ge=0.0)

    @field_validator("commitment")
    @classmethod
    def _known_commitment(cls, value: str) -> str:
        value = value.lower()
        if value not in {"processed", "confirmed", "finalized"}:
            raise ValueError(f"unsupported commitment level: {value}")
        return value


class WalletConfig(BaseModel):
    """Signer configuration."""

    private_key: Optional[str] = None
    keypair_path: Optional[Path] = None


class TradingConfig(BaseModel):
    """Buy sizing and exit thresholds."""

    quote_mint: Optional[QuoteAsset] = None
    quote_amount: Optional[float] = Field(default=None, gt=0.0)
    min_pool_size: float = Field(default=0.0, ge=0.0)
    take_profit: float = Field(default=0.2)
    stop_loss: float = Field(default=-0.1)
    auto_sell: bool = True
    auto_sell_delay_seconds: float = Field(default=20.0, gt=0.0)
    max_sell_retries: int = Field(default=5, ge=1)
    dynamic_position_sizing: bool = False
    max_slippage_percent: float = Field(default=1.0, gt=0.0, le=100.0)

    @field_validator("quote_mint", mode="before")
    @classmethod
    def _upper_quote(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "TradingConfig":
        if self.stop_loss >= self.take_profit:
            raise ValueError("stop_loss must be lower than take_profit")
        return self


class RiskConfig(BaseModel):
    """Session risk limits and admission control."""

    risk_level: RiskLevel = Field(default=RiskLevel.MEDIUM)
    max_daily_trades: int = Field(default=20, ge=1)
    max_daily_loss_percent: float = Field(default=5.0, ge=0.0)
    max_concurrent_transactions: int = Field(default=3, ge=1)
    apply_risk_gate_to_sells: bool = False

    @field_validator("risk_level", mode="before")
    @classmethod
    def _lower_risk(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class TradingHoursConfig(BaseModel):
    """Local wall-clock window trading is allowed in."""

    enabled: bool = False
    start_hour: int = Field(default=0, ge=0, le=24)
    end_hour: int = Field(default=24, ge=0, le=24)


class SecurityConfig(BaseModel):
    check_if_mint_is_renounced: bool = True
    check_if_mint_is_freezable: bool = False
    check_if_mint_is_mintable: bool = False


class SnipeListConfig(BaseModel):
    """Allow-list of mints the bot is permitted to buy."""

    enabled: bool = False
    path: Path = Field(default=Path("./snipe-list.txt"))
    refresh_interval_seconds: float = Field(default=30.0, gt=0.0)


class PriceImpactConfig(BaseModel):
    enabled: bool = False
    max_price_impact_percent: float = Field(default=3.0, gt=0.0)


class SentimentConfig(BaseModel):
    """Sentiment gate thresholds and on-chain sampling bounds."""

    enabled: bool = False
    min_confidence: float = Field(default=60.0, ge=0.0, le=100.0)
    required_level: SentimentLevel = Field(default=SentimentLevel.NEUTRAL)
    signature_limit: int = Field(default=100, ge=1, le=1_000)
    transaction_sample_size: int = Field(default=20, ge=1)
    whale_signature_limit: int = Field(default=50, ge=1, le=1_000)
    whale_sample_size: int = Field(default=10, ge=1)
    whale_threshold_raw: int = Field(default=1_000_000, ge=0)
    lookback_seconds: int = Field(default=3_600, ge=60)

    @field_validator("required_level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return SentimentLevel[value.strip().upper()]
            except KeyError as exc:
                raise ValueError(f"unknown sentiment level: {value}") from exc
        return value


class ExecutionConfig(BaseModel):
    """Submission retry policy and compute budget."""

    submit_attempts: int = Field(default=10, ge=1)
    submit_retry_interval_seconds: float = Field(default=0.01, ge=0.0)
    compute_unit_limit: int = Field(default=200_000, ge=1)
    default_compute_unit_price: int = Field(default=100_000, ge=0)
    priority_fee_sample_size: int = Field(default=20, ge=1)
    priority_fee_multiplier: float = Field(default=1.2, gt=0.0)


class DataSourceConfig(BaseModel):
    """External HTTP price sources."""

    dexscreener_url: AnyHttpUrl = Field(default="https://api.dexscreener.com/latest/dex/tokens/")
    birdeye_url: AnyHttpUrl = Field(default="https://public-api.birdeye.so/public/price")
    birdeye_api_key: Optional[str] = None
    http_timeout: float = Field(default=10.0, ge=1.0, le=45.0)
    cache_ttl_seconds: int = Field(default=300, ge=0)


class CacheConfig(BaseModel):
    """Per-scope time-to-live defaults for the read-through cache."""

    default_ttl_seconds: float = Field(default=120.0, gt=0.0)
    fast_ttl_seconds: float = Field(default=30.0, gt=0.0)
    slow_ttl_seconds: float = Field(default=300.0, gt=0.0)
    statistics_ttl_seconds: float = Field(default=60.0, gt=0.0)
    sweep_interval_seconds: float = Field(default=60.0, gt=0.0)


class StorageConfig(BaseModel):
    profit_file: Path = Field(default=Path("./totalProfit.json"))


class MonitoringConfig(BaseModel):
    """Logging and periodic status reporting."""

    log_level: str = Field(default="INFO")
    status_interval_seconds: float = Field(default=300.0, gt=0.0)
    token_refresh_interval_seconds: float = Field(default=60.0, gt=0.0)
    day_check_interval_seconds: float = Field(default=60.0, gt=0.0)


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    trading_hours: TradingHoursConfig = Field(default_factory=TradingHoursConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    snipe_list: SnipeListConfig = Field(default_factory=SnipeListConfig)
    price_impact: PriceImpactConfig = Field(default_factory=PriceImpactConfig)
    sentiment: SentimentConfig = Field(default_factory=SentimentConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    data_sources: DataSourceConfig = Field(default_factory=DataSourceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Environment variables win over the profile file.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _sync_mode_defaults(self) -> "AppConfig":
        if self.mode.active == AppMode.DEVNET:
            self.mode.cluster = "devnet"
        return self


# Dotted option paths that must be set before trading starts. Alternatives are
# separated by ``|``; any one of them satisfies the requirement.
REQUIRED_OPTIONS: Tuple[str, ...] = (
    "rpc.primary_url",
    "rpc.websocket_url",
    "wallet.private_key|wallet.keypair_path",
    "trading.quote_mint",
    "trading.quote_amount",
)


def _lookup(config: BaseModel, dotted: str) -> Any:
    value: Any = config
    for part in dotted.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


def missing_options(config: AppConfig) -> List[str]:
    missing: List[str] = []
    for option in REQUIRED_OPTIONS:
        alternatives = option.split("|")
        if all(_lookup(config, alt) in (None, "") for alt in alternatives):
            missing.append(option)
    return missing


def ensure_required_options(config: AppConfig) -> AppConfig:
    """Raise :class:`ConfigurationMissing` if any required option is unset."""

    missing = missing_options(config)
    if missing:
        raise ConfigurationMissing(missing)
    return config


def load_app_config(**overrides: Any) -> AppConfig:
    """Build a validated configuration, converting validation errors."""

    try:
        config = AppConfig(**overrides)
    except ValidationError as exc:
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        raise ConfigurationMissing(fields, detail=str(exc)) from exc
    return ensure_required_options(config)


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "AppMode",
    "CacheConfig",
    "DataSourceConfig",
    "ExecutionConfig",
    "ModeConfig",
    "MonitoringConfig",
    "PriceImpactConfig",
    "QuoteAsset",
    "REQUIRED_OPTIONS",
    "RPCConfig",
    "RiskConfig",
    "RiskLevel",
    "SecurityConfig",
    "SentimentConfig",
    "SnipeListConfig",
    "StorageConfig",
    "TradingConfig",
    "TradingHoursConfig",
    "WalletConfig",
    "ensure_required_options",
    "get_app_config",
    "load_app_config",
    "missing_options",
]
