"""Custom exception hierarchy for the strategy engine."""

from typing import Optional


class StrategyEngineError(Exception):
    """Base exception for all strategy engine errors."""


class ChainDataError(StrategyEngineError):
    """Raised when a chain snapshot container cannot be read at all.

    Per-strike data quality problems are never raised; they are repaired or
    nulled by the chain normalizer.
    """


class BacktestError(StrategyEngineError):
    """Base exception for the backtest service boundary.

    ``details`` holds the raw diagnostic text returned by the service (or the
    underlying transport message) so it can be shown to a human.
    """

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}: {self.details}" if self.details else base


class BacktestServiceError(BacktestError):
    """Raised on a non-2xx response or a malformed response body."""

    def __init__(self, message: str, details: str = "", status_code: Optional[int] = None):
        super().__init__(message, details)
        self.status_code = status_code


class BacktestTransportError(BacktestError):
    """Raised when the request never produced an HTTP response."""


class BacktestAuthError(BacktestError):
    """Raised when no access token is available for the backtest service."""
