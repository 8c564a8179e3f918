"""
Stock demand projections for the Analysis view.

Asks the ML forecast service for daily demand and rolls it into day,
month or year buckets. When the service is unreachable the same shape is
produced from a seeded random simulation, flagged with
``source="simulated"`` and a lower confidence, so consumers never need
to know which one they got. The seed is derived from the product id, so
repeated requests for one product return the same series.
"""

import hashlib
import math
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

import numpy as np
import structlog

from integrations.forecast_service import DemandPredictions, ForecastServiceClient, ForecastServiceUnavailable
from inventory.models import Product
from reporting.demand import Granularity, stock_status, upcoming_months, upcoming_years

logger = structlog.get_logger()

FORECAST_SOURCE = "forecast_service"
SIMULATED_SOURCE = "simulated"
SERVICE_CONFIDENCE = 0.85
SIMULATED_CONFIDENCE = 0.4

DEFAULT_HORIZON = {"day": 7, "month": 6, "year": 5}


@dataclass(frozen=True)
class StockDemandPoint:
    period: str
    demand: float
    predicted_stock: float
    status: str
    confidence: float
    source: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "demand": self.demand,
            "predictedStock": self.predicted_stock,
            "status": self.status,
            "confidence": self.confidence,
            "source": self.source,
        }


def effective_threshold(product: Product) -> int:
    """Reorder level, or 20% of current stock when none is set."""
    return product.reorder_threshold or math.floor(product.stock * 0.2)


def product_seed(product_id: str) -> int:
    digest = hashlib.sha256(str(product_id).encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


def _build_points(product: Product, periods: list[str], demands: list[float], confidence: float, source: str) -> list[StockDemandPoint]:
    threshold = effective_threshold(product)
    stock = max(0, product.stock)
    points = []
    cumulative = 0.0
    for period, demand in zip(periods, demands):
        cumulative += demand
        predicted = max(0.0, stock - cumulative)
        points.append(
            StockDemandPoint(
                period=period,
                demand=round(demand),
                predicted_stock=round(predicted),
                status=stock_status(predicted, threshold),
                confidence=confidence,
                source=source,
            )
        )
    return points


def _periods(granularity: Granularity, horizon: int, now: datetime) -> list[str]:
    if granularity == "day":
        return [(now.date() + timedelta(days=i)).isoformat() for i in range(horizon)]
    if granularity == "month":
        return upcoming_months(now, horizon)
    return upcoming_years(now, horizon)


def _bucket_days(period: str, granularity: Granularity, today: date) -> list[date]:
    """Calendar days covered by a bucket; the current year runs to today (YTD)."""
    if granularity == "day":
        return [date.fromisoformat(period)]
    if granularity == "month":
        year, month = (int(part) for part in period.split("-"))
        start, end = date(year, month, 1), date(year, month, monthrange(year, month)[1])
    else:
        year = int(period)
        start, end = date(year, 1, 1), date(year, 12, 31)
        if year == today.year:
            end = today
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def demand_from_predictions(
    predictions: DemandPredictions,
    granularity: Granularity,
    periods: list[str],
    today: date,
) -> list[float]:
    return [sum(predictions.demand_on(day) for day in _bucket_days(period, granularity, today)) for period in periods]


def simulated_demand(product: Product, granularity: Granularity, periods: list[str], now: datetime) -> list[float]:
    """Seeded stand-in demand with the same magnitude rules the dashboard charts used."""
    rng = np.random.default_rng(product_seed(product.id))
    stock = max(0, product.stock)

    if granularity == "day":
        avg_daily = max(1, math.ceil(stock / 30))
        return [float(max(0, math.floor(avg_daily * (0.7 + rng.random() * 0.6)))) for _ in periods]

    if granularity == "month":
        avg_monthly = max(10, math.floor(stock * 1.5))
        return [
            float(max(20, math.floor(avg_monthly * (1 + index * 0.1) * (0.9 + rng.random() * 0.2))))
            for index, _ in enumerate(periods)
        ]

    base_yearly = max(200, math.floor(stock * 12))
    demands = []
    for index, period in enumerate(periods):
        if int(period) == now.year:
            demands.append(float(math.floor(base_yearly * now.month / 12)))
        else:
            demands.append(float(max(400, math.floor(base_yearly * (1 + index * 0.15) * (0.9 + rng.random() * 0.2)))))
    return demands


class StockDemandForecaster:
    """Projects stock against forecast demand, falling back to simulation."""

    def __init__(self, client: ForecastServiceClient | None):
        self.client = client

    async def project(
        self,
        product: Product,
        granularity: Granularity = "day",
        horizon: int | None = None,
        now: datetime | None = None,
    ) -> list[StockDemandPoint]:
        now = now or datetime.now(timezone.utc)
        horizon = horizon or DEFAULT_HORIZON[granularity]
        periods = _periods(granularity, horizon, now)

        if self.client is not None:
            try:
                predictions = await self.client.get_predictions(product.id)
            except ForecastServiceUnavailable:
                logger.info("forecast.fallback_to_simulation", product_id=product.id, granularity=granularity)
            else:
                demands = demand_from_predictions(predictions, granularity, periods, now.date())
                confidence = predictions.confidence if predictions.confidence is not None else SERVICE_CONFIDENCE
                return _build_points(product, periods, demands, confidence, FORECAST_SOURCE)

        demands = simulated_demand(product, granularity, periods, now)
        return _build_points(product, periods, demands, SIMULATED_CONFIDENCE, SIMULATED_SOURCE)
