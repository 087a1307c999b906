"""Strategy package exports."""

from .pipeline import DecisionPipeline
from .risk import SessionRiskState, hour_in_window

__all__ = [
    "DecisionPipeline",
    "SessionRiskState",
    "hour_in_window",
]
