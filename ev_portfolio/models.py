"""Core data structures shared across modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence


ADD = "Add"
HOLD = "Hold"
TRIM = "Trim"
SELL = "Sell"
UNAVAILABLE = "Unavailable"
ASSESSMENTS = (ADD, HOLD, TRIM, SELL, UNAVAILABLE)

TIERS = ("daily", "weekly", "monthly")

DEFAULT_PROBABILITY = 0.65

EV_CHANGE = "ev_change"
BUY_ZONE = "buy_zone"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Position:
    ticker: str
    id: Optional[int] = None
    isin: Optional[str] = None
    company_name: str = ""
    sector: str = ""
    currency: str = "USD"
    # Raw market inputs, local currency
    current_price: float = 0.0
    fair_value: float = 0.0
    beta: float = 0.0
    volatility: float = 0.0  # annualized, percent
    pe_ratio: float = 0.0
    eps_growth_rate: float = 0.0
    debt_to_ebitda: float = 0.0
    dividend_yield: float = 0.0
    # Risk parameters; downside_risk None means calibrate from beta
    probability_positive: float = DEFAULT_PROBABILITY
    downside_risk: Optional[float] = None
    # Set when downside_risk holds a beta calibration rather than a chosen value
    downside_calibrated: bool = False
    # Derived metrics, percent unless noted
    upside_potential: float = 0.0
    b_ratio: float = 0.0
    expected_value: float = 0.0
    kelly_fraction: float = 0.0
    half_kelly_suggested: float = 0.0
    buy_zone_min: float = 0.0
    buy_zone_max: float = 0.0
    assessment: str = ""
    # Sizing
    shares_owned: float = 0.0
    avg_price_local: float = 0.0
    # Base currency valuation
    current_value_base: float = 0.0
    unrealized_pnl: float = 0.0
    weight: float = 0.0
    # Provenance
    data_source: str = ""
    fair_value_source: str = ""
    fetched_at: Dict[str, datetime] = field(default_factory=dict)
    stale: bool = False
    update_frequency: str = "daily"
    comment: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class HistorySnapshot:
    position_id: Optional[int]
    ticker: str
    current_price: float
    fair_value: float
    upside_potential: float
    downside_risk: float
    probability_positive: float
    expected_value: float
    kelly_fraction: float
    weight: float
    assessment: str
    recorded_at: datetime


@dataclass
class PortfolioSettings:
    update_frequency: str = "daily"
    alerts_enabled: bool = True
    alert_threshold_ev: float = 10.0
    last_update_run: Optional[datetime] = None


@dataclass
class Alert:
    position_id: Optional[int]
    ticker: str
    alert_type: str  # ev_change or buy_zone
    message: str
    id: Optional[int] = None
    delivered: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ExchangeRate:
    currency_code: str
    rate: float  # units of base currency per unit of currency_code
    is_manual: bool = False
    last_updated: datetime = field(default_factory=utcnow)


@dataclass
class SourcePatch:
    """Fields returned by one provider for one refresh."""

    source: str
    fields: Dict[str, object]
    fetched_at: datetime = field(default_factory=utcnow)
    fair_value_source: Optional[str] = None
    # True when the provider also supplied EV/Kelly/buy zone/assessment
    derived: bool = False
    exchange_rate: Optional[float] = None

    @property
    def price(self) -> float:
        value = self.fields.get("current_price")
        return float(value) if isinstance(value, (int, float)) else 0.0


@dataclass
class PortfolioMetrics:
    total_value: float = 0.0
    weighted_ev: float = 0.0
    weighted_volatility: float = 0.0
    risk_adjusted_return: float = 0.0
    kelly_utilization: float = 0.0
    sector_weights: Dict[str, float] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=dict)  # ticker -> percent


@dataclass
class BatchResult:
    tier: str
    updated: int = 0
    errors: int = 0
    total: int = 0
    # Set when the batch was not run because another one was in progress
    skipped: bool = False


@dataclass
class EmailPayload:
    subject: str
    body: str
    attachments: Optional[Sequence[str]] = None
