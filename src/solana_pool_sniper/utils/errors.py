"""Exception taxonomy shared by every layer of the bot."""

from __future__ import annotations

from typing import Iterable, Optional


class SniperError(Exception):
    """Base class for all pool sniper failures."""


class UpstreamUnavailable(SniperError):
    """An RPC or HTTP call failed, timed out, or returned no data."""

    def __init__(self, source: str, detail: str = "") -> None:
        self.source = source
        self.detail = detail
        message = f"{source} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MalformedAccountData(SniperError):
    """Raw account bytes could not be decoded into the expected layout."""

    def __init__(self, layout: str, detail: str = "") -> None:
        self.layout = layout
        self.detail = detail
        super().__init__(f"malformed {layout} data{': ' + detail if detail else ''}")


class InsufficientSafety(SniperError):
    """A gate rejected a trade. A decision, not a fault."""

    def __init__(self, gate: str, reason: str) -> None:
        self.gate = gate
        self.reason = reason
        super().__init__(f"{gate}: {reason}")


class TransactionFailed(SniperError):
    """Confirmation reported an on-chain execution error."""

    def __init__(self, signature: str, error: object = None) -> None:
        self.signature = signature
        self.error = error
        super().__init__(f"transaction {signature} failed: {error}")


class ConfigurationMissing(SniperError):
    """A required option is absent or invalid at startup."""

    def __init__(self, options: Iterable[str], detail: Optional[str] = None) -> None:
        self.options = list(options)
        self.detail = detail
        super().__init__("missing or invalid configuration: " + ", ".join(self.options))


__all__ = [
    "ConfigurationMissing",
    "InsufficientSafety",
    "MalformedAccountData",
    "SniperError",
    "TransactionFailed",
    "UpstreamUnavailable",
]
