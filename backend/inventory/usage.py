"""
Usage Estimator — daily usage rate per product.

Algorithm:
  With history:     rate = Σ quantity / window_days
                    window_days = max(1, round((max_ts − min_ts) / 1 day) + 1)
  Without history:  rate = max(floor, max(threshold, stock, 1) / divisor)

The divisor and floor come from the caller's UsageProfile; the
dashboards and reports deliberately use different constants.
The returned rate is always a positive finite float.
"""

import math
from collections import defaultdict
from collections.abc import Iterable

from core.config import DEFAULT_USAGE_PROFILE, UsageProfile
from inventory.models import Product, SalesSample, UsageEstimate

SECONDS_PER_DAY = 86_400
# Last-resort floor if a profile ever carries a non-positive floor.
MIN_USAGE_RATE = 1e-6


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def baseline_daily_usage(stock: int, threshold: int, profile: UsageProfile = DEFAULT_USAGE_PROFILE) -> float:
    """Heuristic usage rate for a product with no sales history."""
    baseline = max(threshold or 1, stock or 1, 1)
    floor = max(profile.usage_floor, MIN_USAGE_RATE)
    return max(floor, baseline / profile.window_divisor)


def summarize_samples(samples: Iterable[SalesSample]) -> dict[str, tuple[float, int]]:
    """Group samples by product → (total quantity, window days)."""
    totals: dict[str, float] = defaultdict(float)
    first_seen: dict[str, float] = {}
    last_seen: dict[str, float] = {}

    for sample in samples:
        ts = sample.timestamp.timestamp()
        totals[sample.product_id] += sample.quantity
        first_seen[sample.product_id] = min(first_seen.get(sample.product_id, ts), ts)
        last_seen[sample.product_id] = max(last_seen.get(sample.product_id, ts), ts)

    summary = {}
    for product_id, total in totals.items():
        span_days = (last_seen[product_id] - first_seen[product_id]) / SECONDS_PER_DAY
        window_days = max(1, round_half_up(span_days) + 1)
        summary[product_id] = (total, window_days)
    return summary


def estimate_usage(
    product: Product,
    history: tuple[float, int] | None,
    profile: UsageProfile = DEFAULT_USAGE_PROFILE,
) -> UsageEstimate:
    """Estimate the daily usage for one product given its (total, window) history."""
    if profile.use_sales_history and history is not None and history[0] > 0:
        total, window_days = history
        rate = total / max(1, window_days)
        if rate > 0 and math.isfinite(rate):
            return UsageEstimate(
                product_id=product.id,
                daily_usage_rate=rate,
                window_days=window_days,
                sample_total_quantity=total,
                from_history=True,
            )

    return UsageEstimate(
        product_id=product.id,
        daily_usage_rate=baseline_daily_usage(product.stock, product.reorder_threshold, profile),
        window_days=1,
        sample_total_quantity=0.0,
        from_history=False,
    )


def estimate_usage_rates(
    products: Iterable[Product],
    samples: Iterable[SalesSample],
    profile: UsageProfile = DEFAULT_USAGE_PROFILE,
) -> dict[str, UsageEstimate]:
    """Estimate usage for every product, keyed by product id."""
    summary = summarize_samples(samples)
    return {product.id: estimate_usage(product, summary.get(product.id), profile) for product in products}
