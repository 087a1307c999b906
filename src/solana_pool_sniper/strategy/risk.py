"""Session-level risk counters and the trading-hours window."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional

from ..analysis.market_conditions import adjust_position_size_by_risk
from ..config.settings import RiskConfig, TradingHoursConfig, get_app_config
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import local_now


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def hour_in_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """``start <= hour < end``, wrapping past midnight when ``start > end``."""

    if start_hour <= end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


class SessionRiskState:
    """Daily trade count, daily profit/loss and the day boundary they reset on."""

    def __init__(
        self,
        risk: Optional[RiskConfig] = None,
        hours: Optional[TradingHoursConfig] = None,
        *,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        app_config = None if risk is not None and hours is not None else get_app_config()
        self._risk = risk or app_config.risk
        self._hours = hours or app_config.trading_hours
        self._clock = clock
        self._day_start = _midnight(clock())
        self.daily_trade_count = 0
        self.daily_profit_loss = 0.0
        self._logger = get_logger(__name__)

    @property
    def day_start(self) -> datetime:
        return self._day_start

    @property
    def config(self) -> RiskConfig:
        return self._risk

    def trading_allowed(self, now: Optional[datetime] = None) -> bool:
        if not self._hours.enabled:
            return True
        moment = now or self._clock()
        return hour_in_window(moment.hour, self._hours.start_hour, self._hours.end_hour)

    def risk_rejection(self) -> Optional[str]:
        """Reason trading is blocked by the daily limits, or ``None``."""

        if self.daily_trade_count >= self._risk.max_daily_trades:
            return f"daily trade limit reached ({self.daily_trade_count}/{self._risk.max_daily_trades})"
        if self.daily_profit_loss < 0 and abs(self.daily_profit_loss) > self._risk.max_daily_loss_percent:
            return (
                f"daily loss limit reached ({self.daily_profit_loss:.2f}% "
                f"beyond -{self._risk.max_daily_loss_percent}%)"
            )
        return None

    def trade_allowed(self) -> bool:
        return self.risk_rejection() is None

    def record_trade(self) -> None:
        self.daily_trade_count += 1
        METRICS.gauge("daily_trade_count", self.daily_trade_count)

    def record_profit(self, profit_percent: float) -> None:
        self.daily_profit_loss += profit_percent
        METRICS.gauge("daily_profit_loss", self.daily_profit_loss)

    def check_day_boundary(self, now: Optional[datetime] = None) -> bool:
        """Reset the counters once when the local date advances."""

        midnight = _midnight(now or self._clock())
        if midnight <= self._day_start:
            return False
        self._logger.info(
            "New trading day, resetting risk counters",
            extra={"trades": self.daily_trade_count, "profit_loss": self.daily_profit_loss},
        )
        self.daily_trade_count = 0
        self.daily_profit_loss = 0.0
        self._day_start = midnight
        return True

    def adjust_position_size(self, size: float) -> float:
        return adjust_position_size_by_risk(size, self._risk.risk_level)

    def snapshot(self) -> Dict[str, object]:
        return {
            "daily_trade_count": self.daily_trade_count,
            "max_daily_trades": self._risk.max_daily_trades,
            "daily_profit_loss": round(self.daily_profit_loss, 4),
            "day_start": self._day_start.isoformat(),
            "trading_allowed": self.trading_allowed(),
        }


__all__ = ["SessionRiskState", "hour_in_window"]
