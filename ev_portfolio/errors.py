"""Exception hierarchy for provider calls, the refresh pipeline, and updates."""
from __future__ import annotations


class PortfolioError(Exception):
    """Base class for every error raised by the package."""


class TransportError(PortfolioError):
    """Network failure or timeout on a provider call. Retried with backoff."""


class ProviderError(PortfolioError):
    """Provider answered but the answer cannot be used. Never retried."""


class SchemaError(ProviderError):
    """Provider payload does not match the expected structure."""


class UnavailableError(PortfolioError):
    """Every provider was exhausted; the position carries the Unavailable state."""

    def __init__(self, ticker: str, causes: list[str] | None = None):
        self.ticker = ticker
        self.causes = list(causes or [])
        detail = "; ".join(self.causes) if self.causes else "no provider configured"
        super().__init__(f"market data unavailable for {ticker}: {detail}")


class ValidationError(PortfolioError):
    """Computed metrics fall outside sane bounds. Logged, never raised past the engine."""


class CommandError(PortfolioError):
    """A typed position update was rejected at the boundary."""


__all__ = [
    "CommandError",
    "PortfolioError",
    "ProviderError",
    "SchemaError",
    "TransportError",
    "UnavailableError",
    "ValidationError",
]
