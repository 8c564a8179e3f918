"""
Demand Aggregator — daily / monthly / yearly rollups of sales samples.

Feeds the Reports and Analysis views. Works on the full sales history
(its window is configured separately from the alerting lookback), so
for the same product the two can legitimately disagree.

Rollup semantics:
  totalDemand     Σ quantity of samples whose timestamp falls in the bucket
  predictedStock  max(0, currentStock − cumulative demand up to and
                  including the bucket, in the requested period order)
  status          "Low Stock" if predictedStock <= threshold else "Adequate"

Agent: data-engineer
Skill: reporting
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

import pandas as pd
import structlog

from inventory.models import SalesSample

logger = structlog.get_logger()

Granularity = Literal["day", "month", "year"]

LOW_STOCK_STATUS = "Low Stock"
ADEQUATE_STATUS = "Adequate"

_PERIOD_FREQ = {"day": "D", "month": "M", "year": "Y"}


@dataclass(frozen=True)
class DemandRollup:
    period: str
    total_demand: float
    predicted_stock: float
    status: str
    product_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "productId": self.product_id,
            "totalDemand": self.total_demand,
            "predictedStock": self.predicted_stock,
            "status": self.status,
        }


@dataclass(frozen=True)
class BestSeller:
    product_id: str
    name: str
    total_quantity: float
    total_revenue: float
    order_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.product_id,
            "name": self.name,
            "totalQuantity": self.total_quantity,
            "totalRevenue": round(self.total_revenue, 2),
            "orderCount": self.order_count,
        }


def stock_status(predicted_stock: float, threshold: float) -> str:
    return LOW_STOCK_STATUS if predicted_stock <= threshold else ADEQUATE_STATUS


# ──────────────────────────────────────────────────────────────────────────
# Period helpers
# ──────────────────────────────────────────────────────────────────────────


def _today(now: datetime | None) -> date:
    return (now or datetime.now(timezone.utc)).date()


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def trailing_days(now: datetime | None = None, count: int = 7) -> list[str]:
    today = _today(now)
    return [(today - timedelta(days=offset)).isoformat() for offset in range(count - 1, -1, -1)]


def trailing_months(now: datetime | None = None, count: int = 6) -> list[str]:
    today = _today(now)
    periods = []
    for offset in range(-(count - 1), 1):
        year, month = _shift_month(today.year, today.month, offset)
        periods.append(f"{year:04d}-{month:02d}")
    return periods


def upcoming_months(now: datetime | None = None, count: int = 6) -> list[str]:
    today = _today(now)
    return [f"{y:04d}-{m:02d}" for y, m in (_shift_month(today.year, today.month, i) for i in range(count))]


def months_of_year(year: int) -> list[str]:
    return [f"{year:04d}-{month:02d}" for month in range(1, 13)]


def trailing_years(now: datetime | None = None, count: int = 5) -> list[str]:
    end = _today(now).year
    return [f"{year:04d}" for year in range(end - count + 1, end + 1)]


def upcoming_years(now: datetime | None = None, count: int = 5) -> list[str]:
    start = _today(now).year
    return [f"{year:04d}" for year in range(start, start + count)]


def granularity_of(period: str) -> Granularity:
    """Infer day/month/year from a period label (YYYY-MM-DD / YYYY-MM / YYYY)."""
    return {10: "day", 7: "month", 4: "year"}.get(len(period), "month")  # type: ignore[return-value]


# ──────────────────────────────────────────────────────────────────────────
# Aggregation
# ──────────────────────────────────────────────────────────────────────────


def samples_frame(samples: list[SalesSample]) -> pd.DataFrame:
    """Sales samples as a DataFrame with a naive-UTC timestamp column."""
    columns = ["product_id", "quantity", "timestamp", "unit_price", "product_name", "invoice_id"]
    if not samples:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(
        [
            {
                "product_id": s.product_id,
                "quantity": float(s.quantity),
                "timestamp": s.timestamp,
                "unit_price": float(s.unit_price),
                "product_name": s.product_name,
                "invoice_id": s.invoice_id,
            }
            for s in samples
        ],
        columns=columns,
    )
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True).dt.tz_localize(None)
    return df


def demand_by_period(
    samples: list[SalesSample],
    granularity: Granularity,
    product_id: str | None = None,
) -> dict[str, float]:
    """Total quantity per period label, optionally for one product."""
    df = samples_frame(samples)
    if product_id is not None and not df.empty:
        df = df[df["product_id"] == str(product_id)]
    if df.empty:
        return {}
    labels = df["timestamp"].dt.to_period(_PERIOD_FREQ[granularity]).astype(str)
    totals = df.groupby(labels)["quantity"].sum()
    return {str(label): float(total) for label, total in totals.items()}


def rollup_demand(
    samples: list[SalesSample],
    periods: list[str],
    product_id: str | None = None,
    current_stock: float = 0,
    threshold: float = 0,
) -> list[DemandRollup]:
    """One rollup row per requested period, in the order given. Empty periods are zero."""
    if not periods:
        return []
    totals = demand_by_period(samples, granularity_of(periods[0]), product_id)

    rows = []
    cumulative = 0.0
    for period in periods:
        demand = totals.get(period, 0.0)
        cumulative += demand
        predicted = max(0.0, current_stock - cumulative)
        rows.append(
            DemandRollup(
                period=period,
                total_demand=demand,
                predicted_stock=predicted,
                status=stock_status(predicted, threshold),
                product_id=str(product_id) if product_id is not None else None,
            )
        )
    return rows


def monthly_movement(samples: list[SalesSample], now: datetime | None = None, months: int = 6) -> list[dict[str, Any]]:
    """Units sold per month over the trailing window (the Reports movement chart)."""
    totals = demand_by_period(samples, "month")
    return [{"period": period, "value": totals.get(period, 0.0)} for period in trailing_months(now, months)]


def top_sellers(
    samples: list[SalesSample],
    year: int | None = None,
    limit: int = 5,
    names: dict[str, str] | None = None,
) -> list[BestSeller]:
    """Rank products by quantity sold, optionally within one calendar year."""
    df = samples_frame(samples)
    if year is not None and not df.empty:
        df = df[df["timestamp"].dt.year == year]
    if df.empty:
        return []

    df = df.assign(revenue=df["quantity"] * df["unit_price"])
    grouped = (
        df.groupby("product_id", sort=False)
        .agg(
            total_quantity=("quantity", "sum"),
            total_revenue=("revenue", "sum"),
            order_count=("quantity", "size"),
            product_name=("product_name", "first"),
        )
        .reset_index()
        .sort_values("total_quantity", ascending=False, kind="stable")
        .head(limit)
    )

    names = names or {}
    return [
        BestSeller(
            product_id=str(row.product_id),
            name=names.get(str(row.product_id)) or _clean_name(row.product_name) or f"Product {row.product_id}",
            total_quantity=float(row.total_quantity),
            total_revenue=float(row.total_revenue),
            order_count=int(row.order_count),
        )
        for row in grouped.itertuples(index=False)
    ]


def _clean_name(value: Any) -> str | None:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    return str(value) or None
