"""FX conversion utilities and the shared currency-rate cache."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional, Protocol

from .errors import PortfolioError
from .models import ExchangeRate, utcnow


logger = logging.getLogger(__name__)


class FXRateSource(Protocol):
    def rate(self, currency: str, base_currency: str) -> float:
        ...


class RateCache:
    """Currency -> base-currency rates with an explicit expiry policy.

    ``ttl_seconds=None`` keeps entries until overwritten. Manual overrides
    never expire and are not replaced by provider rates. Writes are
    last-writer-wins; the refresh loop is single threaded.
    """

    def __init__(self, base_currency: str = "USD", ttl_seconds: Optional[float] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.base_currency = base_currency
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._rates: Dict[str, ExchangeRate] = {}

    def put(self, currency: str, rate: float, manual: bool = False) -> bool:
        if rate is None or rate <= 0:
            return False
        existing = self._rates.get(currency)
        if existing is not None and existing.is_manual and not manual:
            logger.debug("keeping manual rate for %s", currency)
            return False
        self._rates[currency] = ExchangeRate(currency, float(rate), is_manual=manual, last_updated=self._clock())
        return True

    def get(self, currency: str) -> Optional[float]:
        if currency == self.base_currency:
            return 1.0
        entry = self._rates.get(currency)
        if entry is None:
            return None
        if self._expired(entry):
            del self._rates[currency]
            return None
        return entry.rate

    def invalidate(self, currency: Optional[str] = None) -> None:
        if currency is None:
            self._rates = {c: r for c, r in self._rates.items() if r.is_manual}
        else:
            self._rates.pop(currency, None)

    def snapshot(self) -> Dict[str, ExchangeRate]:
        return dict(self._rates)

    def _expired(self, entry: ExchangeRate) -> bool:
        if entry.is_manual or self.ttl_seconds is None:
            return False
        return self._clock() - entry.last_updated > timedelta(seconds=self.ttl_seconds)


class CurrencyEngine:
    def __init__(self, cache: RateCache, fx_source: Optional[FXRateSource] = None):
        self.cache = cache
        self.fx_source = fx_source

    @property
    def base_currency(self) -> str:
        return self.cache.base_currency

    def rate(self, currency: str) -> float:
        """Cached rate first, then the FX provider, then 1.0 with a warning."""
        cached = self.cache.get(currency)
        if cached is not None:
            return cached
        if self.fx_source is not None:
            try:
                fetched = self.fx_source.rate(currency, self.base_currency)
            except PortfolioError as exc:
                logger.warning("FX lookup failed for %s: %s", currency, exc)
            else:
                if self.cache.put(currency, fetched):
                    return fetched
        logger.warning("no %s rate for %s, assuming 1.0", self.base_currency, currency)
        return 1.0

    def rates(self, currencies: Iterable[str]) -> Dict[str, float]:
        rates: Dict[str, float] = {self.base_currency: 1.0}
        for currency in currencies:
            if currency not in rates:
                rates[currency] = self.rate(currency)
        return rates

    def to_base(self, amount: float, currency: str) -> float:
        return amount * self.rate(currency)


__all__ = ["CurrencyEngine", "FXRateSource", "RateCache"]
