"""
Alerts Router — ranked depletion alerts and dashboard summary.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from alerts.engine import InventorySummary, evaluate_inventory, prediction_label, select_dashboard_highlights
from api.deps import get_alerting_config, get_backend_client
from core.config import AlertingConfig, get_usage_profile
from integrations.backend_api import BackendUnavailableError, InventoryBackendClient

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    id: str
    productId: str
    name: str
    sku: str
    stock: int
    threshold: int
    daysRemaining: int
    dailyUsage: float
    status: str
    projectedDepletionDate: str | None = None


class AlertHighlight(BaseModel):
    alert: AlertResponse | None
    label: str


class AlertSummaryResponse(BaseModel):
    total_items: int
    low_stock_count: int
    out_of_stock_count: int
    critical_count: int
    critical: AlertHighlight
    warning: AlertHighlight
    alerts: list[AlertResponse] = []
    degraded: bool = False


# ─── Helpers ────────────────────────────────────────────────────────────────


async def _evaluate(backend: InventoryBackendClient, config: AlertingConfig, profile: str | None):
    if profile:
        try:
            config = config.model_copy(update={"usage": get_usage_profile(profile)})
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    products = await backend.get_products()
    invoices = await backend.get_invoices() if config.usage.use_sales_history else []
    return evaluate_inventory(products, invoices, config)


def _highlight(alert) -> AlertHighlight:
    return AlertHighlight(
        alert=AlertResponse(**alert.to_dict()) if alert else None,
        label=prediction_label(alert.days_remaining if alert else None),
    )


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[AlertResponse])
async def list_alerts(
    limit: int | None = Query(None, ge=1, le=500),
    profile: str | None = None,
    backend: InventoryBackendClient = Depends(get_backend_client),
    config: AlertingConfig = Depends(get_alerting_config),
):
    """Full ranked alert list (critical first, then fewest days remaining)."""
    try:
        evaluation = await _evaluate(backend, config, profile)
    except BackendUnavailableError as exc:
        logger.warning("api.alerts.backend_unavailable", error=str(exc))
        return []
    alerts = evaluation.alerts[:limit] if limit else evaluation.alerts
    return [alert.to_dict() for alert in alerts]


@router.get("/summary", response_model=AlertSummaryResponse)
async def get_alert_summary(
    profile: str | None = None,
    backend: InventoryBackendClient = Depends(get_backend_client),
    config: AlertingConfig = Depends(get_alerting_config),
):
    """Dashboard counters, the most urgent critical and warning alerts, and the top of the ranked list."""
    try:
        evaluation = await _evaluate(backend, config, profile)
    except BackendUnavailableError as exc:
        logger.warning("api.alerts.backend_unavailable", error=str(exc))
        return AlertSummaryResponse(**InventorySummary().to_dict(), critical=_highlight(None), warning=_highlight(None), degraded=True)

    critical, warning = select_dashboard_highlights(evaluation.alerts)
    return AlertSummaryResponse(
        **evaluation.summary.to_dict(),
        critical=_highlight(critical),
        warning=_highlight(warning),
        alerts=[AlertResponse(**alert.to_dict()) for alert in evaluation.alerts[: config.dashboard_alert_limit]],
    )
