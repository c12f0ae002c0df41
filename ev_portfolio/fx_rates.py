"""exchangeratesapi.io-backed FX rate source."""
from __future__ import annotations

from dataclasses import dataclass, field

import requests

from .config import ProviderConfig
from .errors import SchemaError
from .http_client import request_json


@dataclass
class ExchangeRatesApiSource:
    """Latest conversion rate from one currency into the base currency."""

    api_key: str
    config: ProviderConfig = field(default_factory=ProviderConfig)
    session: requests.Session = field(default_factory=requests.Session)
    url: str = "https://api.exchangeratesapi.io/v1/latest"

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("EXCHANGE_RATES_API_KEY is required for ExchangeRatesApiSource")

    def rate(self, currency: str, base_currency: str) -> float:
        if currency == base_currency:
            return 1.0
        payload = request_json(
            self.session,
            "GET",
            self.url,
            params={"access_key": self.api_key, "base": currency, "symbols": base_currency},
            timeout=self.config.quote_timeout,
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base,
        )
        rates = payload.get("rates")
        if not isinstance(rates, dict) or not isinstance(rates.get(base_currency), (int, float)):
            raise SchemaError(f"no {base_currency} rate in exchange rate response for {currency}")
        return float(rates[base_currency])


__all__ = ["ExchangeRatesApiSource"]
