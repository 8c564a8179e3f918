"""
Reports Router — demand rollups, best sellers and stock projections.

Rollups read the full invoice history (``reporting_lookback_days``),
independently of the alerting lookback window.
"""

from datetime import datetime, timezone
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from api.deps import get_backend_client, get_forecaster
from core.config import get_settings
from integrations.backend_api import BackendUnavailableError, InventoryBackendClient
from inventory.history import extract_sales_samples
from reporting.demand import (
    monthly_movement,
    months_of_year,
    rollup_demand,
    top_sellers,
    trailing_days,
    trailing_months,
    trailing_years,
)
from reporting.forecast import StockDemandForecaster

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class DemandRollupResponse(BaseModel):
    period: str
    productId: str | None
    totalDemand: float
    predictedStock: float
    status: str


class BestSellerResponse(BaseModel):
    id: str
    name: str
    totalQuantity: float
    totalRevenue: float
    orderCount: int


class MovementPoint(BaseModel):
    period: str
    value: float


class StockDemandPointResponse(BaseModel):
    period: str
    demand: float
    predictedStock: float
    status: str
    confidence: float
    source: str


# ─── Helpers ────────────────────────────────────────────────────────────────


async def _load_history(backend: InventoryBackendClient, now: datetime):
    try:
        products = await backend.get_products()
        invoices = await backend.get_invoices()
    except BackendUnavailableError as exc:
        logger.warning("api.reports.backend_unavailable", error=str(exc))
        raise HTTPException(status_code=503, detail="Inventory backend unavailable") from exc
    samples = extract_sales_samples(invoices, now=now, lookback_days=get_settings().reporting_lookback_days)
    return products, samples


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/demand", response_model=list[DemandRollupResponse])
async def get_demand_rollup(
    granularity: Literal["day", "month", "year"] = "month",
    year: int | None = Query(None, ge=1970, le=9999),
    product_id: str | None = None,
    count: int = Query(6, ge=1, le=366),
    backend: InventoryBackendClient = Depends(get_backend_client),
):
    """Demand per day/month/year with projected stock. Without product_id, all products are summed."""
    now = datetime.now(timezone.utc)
    products, samples = await _load_history(backend, now)

    if product_id is not None:
        product = next((p for p in products if p.id == product_id), None)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        current_stock, threshold = product.stock, product.reorder_threshold
    else:
        current_stock = sum(p.stock for p in products)
        threshold = sum(p.reorder_threshold for p in products)

    if granularity == "day":
        periods = trailing_days(now, count)
    elif granularity == "month":
        periods = months_of_year(year) if year else trailing_months(now, count)
    else:
        periods = trailing_years(now, count)

    rows = rollup_demand(samples, periods, product_id=product_id, current_stock=current_stock, threshold=threshold)
    return [row.to_dict() for row in rows]


@router.get("/top-sellers", response_model=list[BestSellerResponse])
async def get_top_sellers(
    year: int | None = Query(None, ge=1970, le=9999),
    limit: int = Query(5, ge=1, le=50),
    backend: InventoryBackendClient = Depends(get_backend_client),
):
    now = datetime.now(timezone.utc)
    products, samples = await _load_history(backend, now)
    names = {p.id: p.name for p in products}
    return [seller.to_dict() for seller in top_sellers(samples, year=year or now.year, limit=limit, names=names)]


@router.get("/movement", response_model=list[MovementPoint])
async def get_stock_movement(
    months: int = Query(6, ge=1, le=36),
    backend: InventoryBackendClient = Depends(get_backend_client),
):
    """Units sold per month over the trailing window."""
    now = datetime.now(timezone.utc)
    _, samples = await _load_history(backend, now)
    return monthly_movement(samples, now, months)


@router.get("/forecast/{product_id}", response_model=list[StockDemandPointResponse])
async def get_stock_forecast(
    product_id: str,
    granularity: Literal["day", "month", "year"] = "day",
    horizon: int | None = Query(None, ge=1, le=366),
    backend: InventoryBackendClient = Depends(get_backend_client),
    forecaster: StockDemandForecaster = Depends(get_forecaster),
):
    """Projected stock against forecast demand; simulated when the forecast service is down."""
    try:
        products = await backend.get_products()
    except BackendUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Inventory backend unavailable") from exc

    product = next((p for p in products if p.id == product_id), None)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    points = await forecaster.project(product, granularity=granularity, horizon=horizon)
    return [point.to_dict() for point in points]
