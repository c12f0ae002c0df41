"""Generative-analysis provider: xAI chat completions under a strict JSON contract.

The model is asked for the raw inputs of a position together with the EV and
Kelly metrics it derives from them. The reply must parse into
``StockAnalysis``; anything else is a ``SchemaError`` and the pipeline moves
on to its fallback.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import pydantic
import requests
from pydantic import BaseModel, ConfigDict, Field

from .config import MetricsConfig, ProviderConfig
from .errors import SchemaError
from .http_client import request_json
from .models import Position, SourcePatch, utcnow


logger = logging.getLogger(__name__)

SOURCE = "Grok AI"

SYSTEM_PROMPT = "You are a financial analyst AI. Respond only with valid JSON data, no additional text."

ANALYSIS_PROMPT = """\
You are a financial analyst applying a probabilistic investment strategy built on
expected value (EV) and half-Kelly position sizing.

Rules:
- EV = p * upside% + (1 - p) * downside%.
- b = upside% / |downside%|, q = 1 - p, Kelly f* = (b * p - q) / b, floored at 0.
- Half-Kelly sizing is f* / 2, capped at {half_kelly_cap:g}%.
- Assessment: "Add" if EV > {add_threshold:g}, "Hold" if EV > 0, "Trim" if EV > {sell_threshold:g}, else "Sell".

Analyze {ticker} ({company}) in the {sector} sector, quoted in {currency}.

Requirements:
- current_price is the latest traded price on the exchange today.
- fair_value is the median 12-month analyst consensus target price.
- Use p = 0.65 by default; 0.7 for Strong Buy consensus, 0.5 for Hold.
- Calibrate downside by beta: < 0.5 -> -15, 0.5-1 -> -20, 1-1.5 -> -25, >= 1.5 -> -30.
- exchange_rate_to_base is the value of 1 {currency} in {base_currency}.

Return ONLY a JSON object with exactly these fields:
{{
  "ticker": "{ticker}",
  "company_name": string,
  "sector": string,
  "currency": "{currency}",
  "current_price": number,
  "exchange_rate_to_base": number,
  "fair_value": number,
  "beta": number,
  "volatility": number (annualized, percent),
  "pe_ratio": number,
  "eps_growth_rate": number (percent),
  "debt_to_ebitda": number,
  "dividend_yield": number (percent),
  "probability_positive": number between 0 and 1,
  "downside_risk": number <= 0,
  "upside_potential": number,
  "b_ratio": number,
  "expected_value": number,
  "kelly_fraction": number,
  "half_kelly_suggested": number,
  "buy_zone_min": number,
  "buy_zone_max": number,
  "assessment": "Add" | "Hold" | "Trim" | "Sell"
}}
"""


class StockAnalysis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ticker: str
    company_name: str = ""
    sector: str = ""
    currency: str = ""
    current_price: float = Field(ge=0)
    exchange_rate_to_base: Optional[float] = None
    fair_value: float = Field(ge=0)
    beta: float
    volatility: float
    pe_ratio: float
    eps_growth_rate: float
    debt_to_ebitda: float
    dividend_yield: float
    probability_positive: float = Field(ge=0, le=1)
    downside_risk: float = Field(le=0)
    upside_potential: float
    b_ratio: float
    expected_value: float
    kelly_fraction: float
    half_kelly_suggested: float
    buy_zone_min: float
    buy_zone_max: float
    assessment: str


RAW_FIELDS = (
    "current_price",
    "fair_value",
    "beta",
    "volatility",
    "pe_ratio",
    "eps_growth_rate",
    "debt_to_ebitda",
    "dividend_yield",
    "probability_positive",
    "downside_risk",
)
DERIVED_FIELDS = (
    "upside_potential",
    "b_ratio",
    "expected_value",
    "kelly_fraction",
    "half_kelly_suggested",
    "buy_zone_min",
    "buy_zone_max",
    "assessment",
)


def _strip_fences(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_analysis(content: str) -> StockAnalysis:
    try:
        return StockAnalysis.model_validate_json(_strip_fences(content))
    except pydantic.ValidationError as exc:
        raise SchemaError(f"analysis does not match schema: {exc.error_count()} error(s): {exc}") from exc


@dataclass
class GrokAnalysisProvider:
    api_key: str
    config: ProviderConfig = field(default_factory=ProviderConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    base_currency: str = "USD"
    session: requests.Session = field(default_factory=requests.Session)
    url: str = "https://api.x.ai/v1/chat/completions"
    name: str = "grok"

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("XAI_API_KEY is required for GrokAnalysisProvider")

    def build_prompt(self, position: Position) -> str:
        return ANALYSIS_PROMPT.format(
            ticker=position.ticker,
            company=position.company_name or position.ticker,
            sector=position.sector or "Unknown",
            currency=position.currency,
            base_currency=self.base_currency,
            add_threshold=self.metrics.add_threshold,
            sell_threshold=self.metrics.sell_threshold,
            half_kelly_cap=self.metrics.half_kelly_cap,
        )

    def fetch(self, position: Position) -> SourcePatch:
        body = {
            "model": self.config.grok_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(position)},
            ],
            "stream": False,
        }
        payload = request_json(
            self.session,
            "POST",
            self.url,
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.config.analysis_timeout,
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base,
        )
        choices = payload.get("choices") or []
        if not choices:
            raise SchemaError("analysis response has no choices")
        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise SchemaError("analysis response has no message content")
        logger.debug("analysis content for %s: %s", position.ticker, content)

        analysis = parse_analysis(content)
        return self._to_patch(analysis)

    def _to_patch(self, analysis: StockAnalysis) -> SourcePatch:
        now = utcnow()
        data = analysis.model_dump()
        fields: Dict[str, object] = {name: data[name] for name in RAW_FIELDS + DERIVED_FIELDS}
        for name in ("company_name", "sector"):
            if data[name]:
                fields[name] = data[name]
        if analysis.fair_value > 0 and analysis.current_price > 0:
            upside = (analysis.fair_value - analysis.current_price) / analysis.current_price * 100
            if upside > self.metrics.max_sane_upside:
                logger.warning(
                    "fair value %.2f for %s looks inflated (%.1f%% upside), verify the consensus target",
                    analysis.fair_value, analysis.ticker, upside,
                )
        return SourcePatch(
            source=SOURCE,
            fields=fields,
            fetched_at=now,
            fair_value_source=f"{SOURCE} Analysis, {now:%b} {now.day}, {now.year}",
            derived=True,
            exchange_rate=analysis.exchange_rate_to_base,
        )


__all__ = ["GrokAnalysisProvider", "StockAnalysis", "parse_analysis"]
