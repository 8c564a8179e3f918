"""
AIventory API Dependencies

Dependency injection for the backend client, notification store,
per-request alerting config and the shared cycle runner.
"""

from functools import lru_cache

from alerts.store import NotificationFeed, NotificationStore, get_notification_store
from core.config import AlertingConfig, build_alerting_config, get_settings
from integrations.backend_api import InventoryBackendClient
from integrations.forecast_service import ForecastServiceClient
from reporting.forecast import StockDemandForecaster
from workers.alert_cycle import AlertCycleRunner


def get_backend_client() -> InventoryBackendClient:
    return InventoryBackendClient.from_settings()


@lru_cache
def get_store() -> NotificationStore:
    """One store per process; the cycle runner is its only writer."""
    return get_notification_store(get_settings())


def get_feed() -> NotificationFeed:
    return NotificationFeed(get_store())


def get_alerting_config() -> AlertingConfig:
    return build_alerting_config(get_settings())


def get_forecaster() -> StockDemandForecaster:
    return StockDemandForecaster(ForecastServiceClient.from_settings())


@lru_cache
def get_cycle_runner() -> AlertCycleRunner:
    return AlertCycleRunner(backend=get_backend_client(), store=get_store())
