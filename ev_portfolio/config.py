"""Engine configuration dataclasses and defaults."""
from dataclasses import dataclass, field
import os
from typing import List, Optional


@dataclass(frozen=True)
class MetricsConfig:
    add_threshold: float = 7.0
    # EV at or below this value is a Sell, between it and 0 a Trim.
    sell_threshold: float = -5.0
    half_kelly_cap: float = 15.0
    target_ev: float = 15.0
    buy_zone_width: float = 0.90
    fallback_zone_low: float = 0.85
    fallback_zone_high: float = 0.95
    max_sane_upside: float = 100.0


@dataclass(frozen=True)
class ProviderConfig:
    alpha_vantage_api_key: Optional[str] = None
    xai_api_key: Optional[str] = None
    exchange_rates_api_key: Optional[str] = None
    enable_yahoo: bool = False
    grok_model: str = "grok-4-fast-reasoning"
    quote_timeout: float = 10.0
    analysis_timeout: float = 60.0
    max_attempts: int = 3
    backoff_base: float = 1.0


@dataclass(frozen=True)
class SchedulerConfig:
    poll_interval: float = 60.0
    # Pause between positions inside one batch to stay under provider rate limits.
    per_position_delay: float = 1.0
    alert_sweep_interval: float = 3600.0
    history_retention: int = 100


@dataclass
class EmailConfig:
    sender: str = "alerts@example.com"
    recipients: List[str] = field(default_factory=list)
    smtp_host: str = "localhost"
    smtp_port: int = 25
    username: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = False


@dataclass
class AppConfig:
    base_currency: str = "USD"
    # None keeps cached rates until overwritten.
    rate_ttl_seconds: Optional[float] = None
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    email: EmailConfig = field(default_factory=EmailConfig)

    @classmethod
    def from_env(cls, environ=None) -> "AppConfig":
        env = os.environ if environ is None else environ
        recipients = [r.strip() for r in env.get("ALERT_EMAIL_TO", "").split(",") if r.strip()]
        ttl = env.get("RATE_TTL_SECONDS")
        return cls(
            base_currency=env.get("BASE_CURRENCY", "USD"),
            rate_ttl_seconds=float(ttl) if ttl else None,
            metrics=MetricsConfig(sell_threshold=float(env.get("SELL_THRESHOLD", "-5"))),
            providers=ProviderConfig(
                alpha_vantage_api_key=env.get("ALPHA_VANTAGE_API_KEY") or None,
                xai_api_key=env.get("XAI_API_KEY") or None,
                exchange_rates_api_key=env.get("EXCHANGE_RATES_API_KEY") or None,
                enable_yahoo=env.get("ENABLE_YAHOO", "").lower() in ("1", "true", "yes"),
                grok_model=env.get("GROK_MODEL", "grok-4-fast-reasoning"),
            ),
            scheduler=SchedulerConfig(
                per_position_delay=float(env.get("PER_POSITION_DELAY", "1.0")),
            ),
            email=EmailConfig(
                sender=env.get("ALERT_EMAIL_FROM", "alerts@example.com"),
                recipients=recipients,
                smtp_host=env.get("SMTP_HOST", "localhost"),
                smtp_port=int(env.get("SMTP_PORT", "25")),
                username=env.get("SMTP_USERNAME") or None,
                password=env.get("SMTP_PASSWORD") or None,
                use_tls=env.get("SMTP_TLS", "").lower() in ("1", "true", "yes"),
            ),
        )
