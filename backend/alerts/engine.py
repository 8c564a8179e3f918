"""
Alert Engine — severity classification, ranking and dashboard rollups.

Pipeline (one cycle):
  paid invoices → sales samples → daily usage → days remaining → severity

Severity Rules:
  - critical: stock <= reorder threshold
  - warning:  threshold < stock <= threshold × 1.25
  - normal:   anything above the warning band (dropped, never an Alert)

Products with a reorder threshold of 0 are excluded from classification.
Ranking is ascending (severity rank, days remaining); Python's stable sort
keeps backend order for full ties, so the same input always ranks the same.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from core.config import DEFAULT_USAGE_PROFILE, AlertingConfig, UsageProfile
from inventory.depletion import UNKNOWN_DAYS_REMAINING, project_days_remaining
from inventory.history import extract_sales_samples
from inventory.models import Invoice, Product, UsageEstimate
from inventory.usage import estimate_usage_rates

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────────────────
# Detection Rules
# ──────────────────────────────────────────────────────────────────────────

CRITICAL = "critical"
WARNING = "warning"
NORMAL = "normal"

WARNING_BAND_MULTIPLIER = 1.25

SEVERITY_RANK = {
    CRITICAL: 0,
    WARNING: 1,
    NORMAL: 2,
}


def classify_severity(stock: float, threshold: float) -> str | None:
    """
    Classify a stock level against its reorder threshold.

    Returns None when the product cannot be classified (threshold of 0).
    """
    if threshold <= 0:
        return None
    if stock <= threshold:
        return CRITICAL
    if stock <= threshold * WARNING_BAND_MULTIPLIER:
        return WARNING
    return NORMAL


# ──────────────────────────────────────────────────────────────────────────
# Alerts
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Alert:
    """A product that needs attention this cycle. Derived, never persisted."""

    product_id: str
    name: str
    sku: str
    stock: int
    threshold: int
    daily_usage_rate: float
    days_remaining: int
    severity: str
    projected_depletion_date: datetime | None = None

    @property
    def id(self) -> str:
        return self.product_id

    @property
    def daily_usage(self) -> float:
        return round(self.daily_usage_rate, 2)

    @property
    def severity_rank(self) -> int:
        return SEVERITY_RANK[self.severity]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "stock": self.stock,
            "threshold": self.threshold,
            "daysRemaining": self.days_remaining,
            "dailyUsage": self.daily_usage,
            "status": self.severity,
            "projectedDepletionDate": (
                self.projected_depletion_date.isoformat() if self.projected_depletion_date else None
            ),
        }


def build_alert(product: Product, usage: UsageEstimate, now: datetime) -> Alert | None:
    """Build the alert for one product, or None if it is normal/unclassifiable."""
    severity = classify_severity(product.stock, product.reorder_threshold)
    if severity is None or severity == NORMAL:
        return None

    days_remaining = project_days_remaining(product.stock, usage.daily_usage_rate)
    depletion_date = now + timedelta(days=days_remaining) if days_remaining != UNKNOWN_DAYS_REMAINING else None
    return Alert(
        product_id=product.id,
        name=product.name,
        sku=product.sku,
        stock=product.stock,
        threshold=product.reorder_threshold,
        daily_usage_rate=usage.daily_usage_rate,
        days_remaining=days_remaining,
        severity=severity,
        projected_depletion_date=depletion_date,
    )


def rank_alerts(alerts: list[Alert]) -> list[Alert]:
    """Most urgent first: critical before warning, then fewest days remaining."""
    return sorted(alerts, key=lambda a: (a.severity_rank, a.days_remaining))


def classify_products(
    products: list[Product],
    usage_rates: dict[str, UsageEstimate],
    now: datetime | None = None,
) -> list[Alert]:
    """
    Classify every product and return the full ranked alert list.

    A product id maps to at most one alert; later duplicates are ignored.
    """
    now = now or datetime.now(timezone.utc)
    alerts: list[Alert] = []
    seen: set[str] = set()
    for product in products:
        if product.id in seen:
            continue
        usage = usage_rates.get(product.id)
        if usage is None:
            continue
        alert = build_alert(product, usage, now)
        if alert is not None:
            alerts.append(alert)
            seen.add(product.id)
    return rank_alerts(alerts)


def select_dashboard_highlights(ranked: list[Alert]) -> tuple[Alert | None, Alert | None]:
    """
    Pick the compact dashboard pair from an already ranked list.

    The first slot falls back to the top alert when nothing is critical;
    the warning slot never repeats the product shown in the first slot.
    """
    critical = next((a for a in ranked if a.severity == CRITICAL), None) or (ranked[0] if ranked else None)
    warning = next(
        (a for a in ranked if a.severity == WARNING and (critical is None or a.id != critical.id)),
        None,
    )
    return critical, warning


def prediction_label(days_remaining: float | None) -> str:
    if days_remaining is None or not math.isfinite(days_remaining):
        return "Prediction unavailable"
    if days_remaining <= 0:
        return "Out of stock"
    if days_remaining == 1:
        return "Predicted to run out in 1 day"
    return f"Predicted to run out in {int(days_remaining)} days"


# ──────────────────────────────────────────────────────────────────────────
# Inventory Summary
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InventorySummary:
    total_items: int = 0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    critical_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_items": self.total_items,
            "low_stock_count": self.low_stock_count,
            "out_of_stock_count": self.out_of_stock_count,
            "critical_count": self.critical_count,
        }


def low_stock_products(products: list[Product]) -> list[Product]:
    """Products at or below their reorder level, in backend order."""
    return [p for p in products if p.is_low_stock]


def summarize_inventory(products: list[Product], alerts: list[Alert]) -> InventorySummary:
    low_stock = low_stock_products(products)
    out_of_stock = [p for p in low_stock if p.stock <= 0]
    critical_alerts = sum(1 for a in alerts if a.severity == CRITICAL)
    return InventorySummary(
        total_items=len(products),
        low_stock_count=len(low_stock),
        out_of_stock_count=len(out_of_stock),
        critical_count=critical_alerts or len(out_of_stock),
    )


# ──────────────────────────────────────────────────────────────────────────
# Evaluation (one cycle, pure)
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class InventoryEvaluation:
    alerts: list[Alert] = field(default_factory=list)
    low_stock: list[Product] = field(default_factory=list)
    summary: InventorySummary = field(default_factory=InventorySummary)
    usage_rates: dict[str, UsageEstimate] = field(default_factory=dict)


def compute_alerts(
    products: list[Product],
    invoices: list[Invoice],
    profile: UsageProfile = DEFAULT_USAGE_PROFILE,
    now: datetime | None = None,
) -> tuple[list[Alert], dict[str, UsageEstimate]]:
    """Samples → usage → ranked alerts, using the profile's lookback window."""
    now = now or datetime.now(timezone.utc)
    samples = extract_sales_samples(invoices, now=now, lookback_days=profile.lookback_days) if profile.use_sales_history else []
    usage_rates = estimate_usage_rates(products, samples, profile)
    return classify_products(products, usage_rates, now), usage_rates


def evaluate_inventory(
    products: list[Product],
    invoices: list[Invoice],
    config: AlertingConfig,
    now: datetime | None = None,
) -> InventoryEvaluation:
    """Run the full classification for one cycle under an explicit config."""
    now = now or datetime.now(timezone.utc)
    if config.alerts_enabled:
        alerts, usage_rates = compute_alerts(products, invoices, config.usage, now)
    else:
        alerts, usage_rates = [], {}

    evaluation = InventoryEvaluation(
        alerts=alerts,
        low_stock=low_stock_products(products) if config.alerts_enabled else [],
        summary=summarize_inventory(products, alerts),
        usage_rates=usage_rates,
    )
    logger.debug(
        "alerts.evaluated",
        products=len(products),
        alerts=len(alerts),
        critical=evaluation.summary.critical_count,
    )
    return evaluation
