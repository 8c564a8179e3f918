"""Depletion projection: days of cover and projected stock-out date."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from inventory.usage import round_half_up

UNKNOWN_DAYS_REMAINING = 999


@dataclass(frozen=True)
class DepletionProjection:
    days_remaining: int
    projected_depletion_date: datetime


def project_days_remaining(stock: float, daily_usage_rate: float) -> int:
    """Whole days until stock runs out, at least 1; 999 when the rate is unusable."""
    if not daily_usage_rate or daily_usage_rate <= 0 or not math.isfinite(daily_usage_rate):
        return UNKNOWN_DAYS_REMAINING
    return max(1, round_half_up(stock / daily_usage_rate))


def project_depletion(stock: float, daily_usage_rate: float, now: datetime | None = None) -> DepletionProjection:
    now = now or datetime.now(timezone.utc)
    days = project_days_remaining(stock, daily_usage_rate)
    return DepletionProjection(days_remaining=days, projected_depletion_date=now + timedelta(days=days))
