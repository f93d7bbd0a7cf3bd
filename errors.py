"""
Exception taxonomy for the portfolio tracker.
Kept outside the services package so repositories can raise these without import cycles.
"""

from typing import Optional


class PortfolioError(Exception):
    """Base class for all portfolio tracker errors."""


class ValidationError(PortfolioError, ValueError):
    """Raised when input is malformed (missing/negative quantity, unknown enum, ...)."""


class AuthenticationRequired(PortfolioError):
    """Raised when an operation is invoked without an owner identifier."""


class InsufficientPosition(PortfolioError):
    """Raised when a sell exceeds the tracked quantity or no position exists."""

    def __init__(self, symbol: str, requested: float, available: Optional[float] = None):
        self.symbol = symbol
        self.requested = requested
        self.available = available
        if available is None:
            message = f"Position not found for sell transaction: {symbol}"
        else:
            message = (
                f"Insufficient shares to sell {symbol}: "
                f"requested {requested}, available {available}"
            )
        super().__init__(message)


class UpstreamUnavailable(PortfolioError):
    """Raised when the price gateway or the exchange rate feed cannot be reached."""


class PersistenceError(PortfolioError):
    """Raised when the durable store rejects a read or a write."""
