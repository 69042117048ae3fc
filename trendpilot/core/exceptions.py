"""trendpilot.core.exceptions

Errors are part of the interface.

Fatal errors abort a run with no partial result. Warnings are recovered
locally and never raised.
"""

from __future__ import annotations


class TrendPilotError(Exception):
    """Base exception for trendpilot."""


class ConfigError(TrendPilotError):
    """Configuration is missing, invalid, or inconsistent."""


class DataError(TrendPilotError):
    """Market data is missing or unusable for the requested run."""


class MissingDataError(DataError):
    """A required ticker has no stored history at all."""

    def __init__(self, ticker: str, message: str | None = None) -> None:
        self.ticker = ticker
        super().__init__(message or f"Missing history for {ticker}")


class InsufficientRangeError(DataError):
    """The aligned simulation window is too narrow for analysis."""


class StrategyError(TrendPilotError):
    """Strategy definitions reference each other incorrectly."""


class CircularDependencyError(StrategyError):
    """A composite strategy references itself, directly or through others."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__("Circular strategy reference: " + " -> ".join(self.chain))


class UntradeableDayWarning(UserWarning):
    """A trade side was skipped because no usable execution price existed that day."""
