"""Yahoo Finance quote provider (keyless) built on yfinance."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional

import pandas as pd
import yfinance as yf

from .errors import ProviderError
from .models import Position, SourcePatch, utcnow


SOURCE = "Yahoo Finance"
TRADING_DAYS = 252


def _number(info: Dict, *keys: str) -> Optional[float]:
    for key in keys:
        value = info.get(key)
        if isinstance(value, (int, float)) and math.isfinite(value):
            return float(value)
    return None


def annualized_volatility(closes: pd.Series) -> Optional[float]:
    """Annualized standard deviation of daily returns, in percent."""
    returns = closes.astype(float).pct_change().dropna()
    if len(returns) < 2:
        return None
    return float(returns.std() * math.sqrt(TRADING_DAYS) * 100)


@dataclass
class YahooQuoteProvider:
    """Price, analyst target and fundamentals from ``yf.Ticker(...).info``."""

    history_period: str = "1y"
    name: str = "yahoo"

    def fetch(self, position: Position) -> SourcePatch:
        now = utcnow()
        try:
            ticker = yf.Ticker(position.ticker)
            info = ticker.info or {}
            history = ticker.history(period=self.history_period)
        except Exception as exc:  # yfinance surfaces HTTP and parsing failures untyped
            raise ProviderError(f"yfinance lookup failed for {position.ticker}: {exc}") from exc

        fields: Dict[str, object] = {}
        price = _number(info, "currentPrice", "regularMarketPrice", "previousClose")
        if price is not None:
            fields["current_price"] = price
        mapping = {
            "fair_value": ("targetMeanPrice", "targetMedianPrice"),
            "beta": ("beta",),
            "pe_ratio": ("trailingPE", "forwardPE"),
            "dividend_yield": ("dividendYield",),
        }
        for target, keys in mapping.items():
            value = _number(info, *keys)
            if value is not None:
                fields[target] = value
        growth = _number(info, "earningsGrowth", "earningsQuarterlyGrowth")
        if growth is not None:
            fields["eps_growth_rate"] = growth * 100
        for target, key in (("sector", "sector"), ("company_name", "longName")):
            if info.get(key):
                fields[target] = info[key]

        if history is not None and not history.empty and "Close" in history:
            volatility = annualized_volatility(history["Close"])
            if volatility is not None:
                fields["volatility"] = volatility

        fair_value_source = None
        if "fair_value" in fields:
            fair_value_source = f"{SOURCE} Consensus, {now:%b} {now.day}, {now.year}"
        return SourcePatch(source=SOURCE, fields=fields, fetched_at=now, fair_value_source=fair_value_source)


__all__ = ["YahooQuoteProvider", "annualized_volatility"]
