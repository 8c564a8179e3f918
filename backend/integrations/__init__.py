"""
Upstream service clients.

  - Inventory backend  (REST — products and invoices, read-only)
  - Forecast service   (REST — per-product daily demand predictions)

Usage:
    from integrations import InventoryBackendClient

    client = InventoryBackendClient.from_settings()
    products = await client.get_products()
"""

from integrations.backend_api import BackendUnavailableError, InventoryBackendClient
from integrations.forecast_service import DemandPredictions, ForecastServiceClient, ForecastServiceUnavailable

__all__ = [
    "InventoryBackendClient",
    "BackendUnavailableError",
    "ForecastServiceClient",
    "ForecastServiceUnavailable",
    "DemandPredictions",
]
