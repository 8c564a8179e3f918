"""
Test Configuration — Fixtures for the fake backend, notification store and test client.

The CRUD backend is replaced by an in-process fake so every cycle is
deterministic; the notification store is the in-memory backend.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from alerts.store import InMemoryNotificationStore, NotificationFeed
from api.deps import get_alerting_config, get_backend_client, get_cycle_runner, get_feed, get_forecaster
from api.main import app
from core.config import AlertingConfig
from integrations.backend_api import BackendUnavailableError
from inventory.models import normalize_invoices, normalize_products
from reporting.forecast import StockDemandForecaster
from workers.alert_cycle import AlertCycleRunner

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeBackend:
    """Stands in for InventoryBackendClient.

    ``gates`` holds asyncio.Events consumed one per get_products call, so a
    test can hold a cycle in flight while another one runs.
    """

    def __init__(self, products=None, invoices=None, fail: bool = False):
        self.products = products or []
        self.invoices = invoices or []
        self.fail = fail
        self.gates: list[asyncio.Event] = []
        self.product_calls = 0
        self.invoice_calls = 0

    async def get_products(self):
        self.product_calls += 1
        if self.gates:
            await self.gates.pop(0).wait()
        if self.fail:
            raise BackendUnavailableError("GET /products failed: connection refused")
        return list(self.products)

    async def get_invoices(self):
        self.invoice_calls += 1
        if self.fail:
            raise BackendUnavailableError("GET /invoices failed: connection refused")
        return list(self.invoices)


@pytest.fixture
def now():
    """Fixed clock for cycle and history tests."""
    return NOW


@pytest.fixture
def product_records():
    """Raw backend rows, in the backend's own field spelling."""
    return [
        {"Product_id": "P1", "Product_name": "Whole Milk", "Product_sku": "MILK-1", "Product_stock": 5, "reorder_level": 10},
        {"Product_id": "P2", "Product_name": "Eggs", "Product_sku": "EGG-12", "Product_stock": 12, "reorder_level": 10},
        {"Product_id": "P3", "Product_name": "Bread", "Product_sku": "BRD-1", "Product_stock": 50, "reorder_level": 10},
        {"Product_id": "P4", "Product_name": "Butter", "Product_sku": "BTR-1", "Product_stock": 0, "reorder_level": 4},
        {"Product_id": "P5", "Product_name": "Cheese", "Product_sku": "CHS-1", "Product_stock": 3, "reorder_level": 0},
    ]


@pytest.fixture
def products(product_records):
    return normalize_products(product_records)


@pytest.fixture
def invoice_records():
    return [
        {
            "invoice_id": "INV-1",
            "status": "Paid",
            "invoice_date": (NOW - timedelta(days=10)).isoformat(),
            "items": [{"product_id": "P1", "quantity": 5, "unit_price": 2.0, "product_name": "Whole Milk"}],
        },
        {
            "invoice_id": "INV-2",
            "status": "Paid",
            "invoice_date": NOW.isoformat(),
            "items": [
                {"product_id": "P1", "quantity": 3, "unit_price": 2.0, "product_name": "Whole Milk"},
                {"product_id": "P2", "quantity": 10, "unit_price": 1.0, "product_name": "Eggs"},
            ],
        },
        {
            "invoice_id": "INV-3",
            "status": "Pending",
            "invoice_date": NOW.isoformat(),
            "items": [{"product_id": "P3", "quantity": 40}],
        },
    ]


@pytest.fixture
def invoices(invoice_records):
    return normalize_invoices(invoice_records)


@pytest.fixture
def config():
    """Default usage constants (K=14, floor 0.5, 90-day window, history on)."""
    return AlertingConfig()


@pytest.fixture
def store():
    return InMemoryNotificationStore()


@pytest.fixture
def make_backend():
    """Factory for extra fake backends within one test."""
    return FakeBackend


@pytest.fixture
def backend(products):
    return FakeBackend(products=products)


@pytest.fixture
async def client(backend, store, config):
    """Create an async test client with dependency overrides."""
    runner = AlertCycleRunner(backend=backend, store=store, config_factory=lambda: config, clock=lambda: NOW)

    app.dependency_overrides[get_backend_client] = lambda: backend
    app.dependency_overrides[get_feed] = lambda: NotificationFeed(store)
    app.dependency_overrides[get_alerting_config] = lambda: config
    app.dependency_overrides[get_forecaster] = lambda: StockDemandForecaster(None)
    app.dependency_overrides[get_cycle_runner] = lambda: runner

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
