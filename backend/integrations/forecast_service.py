"""
ML Forecast Service Client

Fetches per-product daily demand predictions:
    GET {forecast_service_url}/api/predictions/{product_id}
    -> {"predictions": {"YYYY-MM-DD": demand, ...}, "confidence": 0.82}

Any failure raises ForecastServiceUnavailable; callers fall back to the
simulated series in reporting.forecast.
"""

from dataclasses import dataclass, field
from datetime import date

import httpx
import structlog

from core.config import Settings, get_settings
from inventory.models import coerce_float

logger = structlog.get_logger()


class ForecastServiceUnavailable(RuntimeError):
    """The forecast service is unreachable or returned an unusable payload."""


@dataclass
class DemandPredictions:
    product_id: str
    daily: dict[date, float] = field(default_factory=dict)
    confidence: float | None = None

    def demand_on(self, day: date) -> float:
        return self.daily.get(day, 0.0)


class ForecastServiceClient:
    def __init__(self, base_url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ForecastServiceClient":
        settings = settings or get_settings()
        return cls(settings.forecast_service_url, timeout=settings.forecast_service_timeout_seconds)

    async def get_predictions(self, product_id: str) -> DemandPredictions:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"/api/predictions/{product_id}")
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.info("forecast_service.unavailable", product_id=product_id, error=str(exc))
            raise ForecastServiceUnavailable(str(exc)) from exc

        raw = payload.get("predictions") if isinstance(payload, dict) else None
        if not isinstance(raw, dict):
            raise ForecastServiceUnavailable("response has no predictions mapping")

        daily: dict[date, float] = {}
        for key, value in raw.items():
            try:
                daily[date.fromisoformat(str(key)[:10])] = coerce_float(value)
            except ValueError:
                continue

        confidence = payload.get("confidence")
        return DemandPredictions(
            product_id=str(product_id),
            daily=daily,
            confidence=coerce_float(confidence) if confidence is not None else None,
        )
