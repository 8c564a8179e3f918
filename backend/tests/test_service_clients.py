"""
Tests for the backend and forecast service clients, using httpx.MockTransport.
"""

from datetime import date

import httpx
import pytest

from integrations.backend_api import BackendUnavailableError, InventoryBackendClient
from integrations.forecast_service import ForecastServiceClient, ForecastServiceUnavailable


def _backend(handler, **kwargs):
    return InventoryBackendClient(
        "http://backend.test/api",
        backoff_min=0,
        backoff_max=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ── Inventory Backend ──────────────────────────────────────────────────


@pytest.mark.asyncio
class TestInventoryBackendClient:
    async def test_products_normalised(self, product_records):
        def handler(request):
            assert request.url.path == "/api/products"
            return httpx.Response(200, json=product_records)

        products = await _backend(handler).get_products()
        assert [p.id for p in products] == ["P1", "P2", "P3", "P4", "P5"]
        assert products[0].stock == 5

    async def test_data_envelope(self, invoice_records):
        def handler(request):
            assert request.url.path == "/api/invoices"
            return httpx.Response(200, json={"data": invoice_records})

        invoices = await _backend(handler).get_invoices()
        assert len(invoices) == 3
        assert invoices[0].is_paid

    async def test_retries_then_succeeds(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[{"id": "A", "stock": 1}])

        products = await _backend(handler, max_attempts=3).get_products()
        assert len(calls) == 3
        assert products[0].id == "A"

    async def test_gives_up_after_max_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        with pytest.raises(BackendUnavailableError):
            await _backend(handler, max_attempts=2).get_products()
        assert len(calls) == 2

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BackendUnavailableError):
            await _backend(handler, max_attempts=1).get_invoices()

    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        with pytest.raises(BackendUnavailableError, match="invalid JSON"):
            await _backend(handler).get_products()

    async def test_unexpected_shape_is_empty(self):
        def handler(request):
            return httpx.Response(200, json={"message": "ok"})

        assert await _backend(handler).get_products() == []


# ── Forecast Service ───────────────────────────────────────────────────


@pytest.mark.asyncio
class TestForecastServiceClient:
    async def test_predictions_parsed(self):
        def handler(request):
            assert request.url.path == "/api/predictions/P1"
            return httpx.Response(
                200,
                json={"predictions": {"2026-03-15": 4, "2026-03-16": "5.5", "bad": 1}, "confidence": 0.9},
            )

        client = ForecastServiceClient("http://ml.test", transport=httpx.MockTransport(handler))
        predictions = await client.get_predictions("P1")
        assert predictions.daily == {date(2026, 3, 15): 4.0, date(2026, 3, 16): 5.5}
        assert predictions.confidence == 0.9
        assert predictions.demand_on(date(2026, 3, 20)) == 0.0

    async def test_server_error(self):
        client = ForecastServiceClient("http://ml.test", transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        with pytest.raises(ForecastServiceUnavailable):
            await client.get_predictions("P1")

    async def test_missing_predictions(self):
        client = ForecastServiceClient(
            "http://ml.test", transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "no model"}))
        )
        with pytest.raises(ForecastServiceUnavailable, match="no predictions"):
            await client.get_predictions("P1")
