"""
AIventory Alerts Configuration

Uses pydantic-settings for type-safe environment variable loading.
Usage profiles and the per-cycle AlertingConfig live here as well, so
every call site reads its tuning constants from one place.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "AIventory Alerts"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # CRUD backend (products, invoices)
    backend_api_url: str = "http://localhost:5001/api"
    backend_api_timeout_seconds: float = 10.0

    # ML forecast service
    forecast_service_url: str = "http://localhost:5002"
    forecast_service_timeout_seconds: float = 5.0

    # Notification store
    redis_url: str = "redis://localhost:6379/0"
    notification_store_backend: str = "redis"  # redis | file | memory
    notification_store_key: str = "notifications"
    notification_store_path: str = "data/notifications.json"

    # Alerting cycle
    alert_poll_interval_seconds: float = 15.0
    alert_lookback_days: int = 90
    reporting_lookback_days: int | None = None
    usage_profile: str | None = None  # None: default constants, sales history on
    notifications_enabled: bool = True
    low_stock_alerts_enabled: bool = True
    ai_notification_limit: int = 3
    low_stock_notification_limit: int = 5
    dashboard_alert_limit: int = 6

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_guardrails(settings)
    return settings


def _enforce_guardrails(settings: Settings) -> None:
    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if settings.notification_store_backend == "memory":
        raise ValueError("Refusing to start with an in-memory notification store outside local/dev/test")


# ──────────────────────────────────────────────────────────────────────────
# Usage Profiles
# ──────────────────────────────────────────────────────────────────────────


class UsageProfile(BaseModel):
    """Tuning constants for the daily usage estimate at one call site."""

    window_divisor: float = Field(14.0, gt=0)
    usage_floor: float = Field(0.5, gt=0)
    lookback_days: int = Field(90, ge=1)
    use_sales_history: bool = True

    model_config = {"frozen": True}


# Divisor/floor pairs differ per view and are not normalised.
USAGE_PROFILES: dict[str, UsageProfile] = {
    "mobile_dashboard": UsageProfile(window_divisor=14, usage_floor=0.5, lookback_days=90, use_sales_history=False),
    "web_dashboard": UsageProfile(window_divisor=20, usage_floor=0.25, lookback_days=90),
    "reports": UsageProfile(window_divisor=30, usage_floor=0.5, lookback_days=90),
    "analysis": UsageProfile(window_divisor=30, usage_floor=1.0, lookback_days=90),
}

DEFAULT_USAGE_PROFILE = UsageProfile()


def get_usage_profile(name: str | None) -> UsageProfile:
    """Look up a named usage profile, falling back to the default constants."""
    if not name:
        return DEFAULT_USAGE_PROFILE
    try:
        return USAGE_PROFILES[name]
    except KeyError:
        raise ValueError(f"Unknown usage profile: {name!r}") from None


class AlertingConfig(BaseModel):
    """Everything the alert engine needs for one cycle, read once at cycle start."""

    notifications_enabled: bool = True
    low_stock_alerts_enabled: bool = True
    usage: UsageProfile = DEFAULT_USAGE_PROFILE
    ai_notification_limit: int = Field(3, ge=0)
    low_stock_notification_limit: int = Field(5, ge=0)
    dashboard_alert_limit: int = Field(6, ge=0)

    model_config = {"frozen": True}

    @property
    def alerts_enabled(self) -> bool:
        return self.notifications_enabled and self.low_stock_alerts_enabled


def build_alerting_config(settings: Settings | None = None, profile: str | None = None) -> AlertingConfig:
    """Snapshot the current settings into an immutable AlertingConfig."""
    settings = settings or get_settings()
    usage = get_usage_profile(profile or settings.usage_profile)
    if usage.lookback_days != settings.alert_lookback_days:
        usage = usage.model_copy(update={"lookback_days": settings.alert_lookback_days})
    return AlertingConfig(
        notifications_enabled=settings.notifications_enabled,
        low_stock_alerts_enabled=settings.low_stock_alerts_enabled,
        usage=usage,
        ai_notification_limit=settings.ai_notification_limit,
        low_stock_notification_limit=settings.low_stock_notification_limit,
        dashboard_alert_limit=settings.dashboard_alert_limit,
    )
