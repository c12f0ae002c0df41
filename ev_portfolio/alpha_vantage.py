"""Alpha Vantage-backed quote and fundamentals provider."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from .config import ProviderConfig
from .errors import PortfolioError, ProviderError
from .http_client import request_json
from .models import Position, SourcePatch, utcnow


logger = logging.getLogger(__name__)

SOURCE = "Alpha Vantage"


def parse_number(raw) -> Optional[float]:
    """Alpha Vantage sends numbers as strings and uses "None" or "-" for missing."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    text = str(raw).strip().rstrip("%")
    if text in ("", "None", "-"):
        return None
    try:
        return float(text)
    except ValueError:
        return None


@dataclass
class AlphaVantageProvider:
    """Live quote (GLOBAL_QUOTE) plus fundamentals (OVERVIEW)."""

    api_key: str
    config: ProviderConfig = field(default_factory=ProviderConfig)
    session: requests.Session = field(default_factory=requests.Session)
    url: str = "https://www.alphavantage.co/query"
    name: str = "alphavantage"

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("ALPHA_VANTAGE_API_KEY is required for AlphaVantageProvider")

    def fetch(self, position: Position) -> SourcePatch:
        fields: Dict[str, object] = {}
        fair_value_source = None
        now = utcnow()

        quote_error: Optional[PortfolioError] = None
        try:
            price = self._fetch_price(position.ticker)
        except PortfolioError as exc:
            quote_error = exc
            logger.warning("Alpha Vantage quote error for %s: %s", position.ticker, exc)
        else:
            if price is not None:
                fields["current_price"] = price

        try:
            overview = self._fetch_overview(position.ticker)
        except PortfolioError as exc:
            if quote_error is not None:
                raise quote_error
            logger.warning("Alpha Vantage overview error for %s: %s", position.ticker, exc)
        else:
            fields.update(self._overview_fields(overview))
            if "fair_value" in fields:
                fair_value_source = f"{SOURCE} Consensus, {now:%b} {now.day}, {now.year}"

        return SourcePatch(source=SOURCE, fields=fields, fetched_at=now, fair_value_source=fair_value_source)

    # --- Alpha Vantage helpers --------------------------------------------
    def _query(self, function: str, symbol: str) -> Dict:
        payload = request_json(
            self.session,
            "GET",
            self.url,
            params={"function": function, "symbol": symbol, "apikey": self.api_key},
            timeout=self.config.quote_timeout,
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base,
        )
        # Throttled or invalid calls still answer 200 with a message body
        for key in ("Note", "Information", "Error Message"):
            if key in payload:
                raise ProviderError(f"{function} for {symbol}: {payload[key]}")
        return payload

    def _fetch_price(self, symbol: str) -> Optional[float]:
        quote = self._query("GLOBAL_QUOTE", symbol).get("Global Quote") or {}
        if not quote.get("01. symbol"):
            raise ProviderError(f"no quote returned for ticker {symbol}")
        return parse_number(quote.get("05. price"))

    def _fetch_overview(self, symbol: str) -> Dict:
        overview = self._query("OVERVIEW", symbol)
        if not overview.get("Symbol"):
            raise ProviderError(f"no overview returned for ticker {symbol}")
        return overview

    def _overview_fields(self, overview: Dict) -> Dict[str, object]:
        fields: Dict[str, object] = {}
        mapping = {
            "beta": "Beta",
            "fair_value": "AnalystTargetPrice",
            "pe_ratio": "PERatio",
            "dividend_yield": "DividendYield",
        }
        for target, key in mapping.items():
            value = parse_number(overview.get(key))
            if value is not None:
                fields[target] = value
        growth = parse_number(overview.get("QuarterlyEarningsGrowthYOY"))
        if growth is not None:
            fields["eps_growth_rate"] = growth * 100
        if overview.get("Sector"):
            fields["sector"] = overview["Sector"]
        if overview.get("Name"):
            fields["company_name"] = overview["Name"]
        return fields


__all__ = ["AlphaVantageProvider", "parse_number"]
