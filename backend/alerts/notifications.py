"""
Notification Reconciler — merge this cycle's alerts into the persisted feed.

Two producers write into one feed:
  - depletion: projected stock-out alerts ("Critical AI Alert" / "AI Prediction Alert")
  - low_stock: items at or below their reorder level ("Low Stock Alert")

Their natural ids differ in shape (``ai-{productId}-{rank}`` vs the bare
product id), so existing notifications are indexed under every key their
producer's key strategy yields, and a candidate is matched by trying its
own keys in order. A match keeps its original timestamp only when the
message text is byte-identical; otherwise the timestamp becomes "now".

The relative-time label is never stored. It is derived on every read.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

import structlog

from alerts.engine import CRITICAL, WARNING, Alert
from core.config import AlertingConfig
from inventory.models import Product

logger = structlog.get_logger()

DEPLETION_SOURCE = "depletion"
LOW_STOCK_SOURCE = "low_stock"

LOW_STOCK_TITLE = "Low Stock Alert"
CRITICAL_DEPLETION_TITLE = "Critical AI Alert"
WARNING_DEPLETION_TITLE = "AI Prediction Alert"


def now_ms(now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    return int(now.timestamp() * 1000)


@dataclass(frozen=True)
class Notification:
    id: str
    title: str
    message: str
    timestamp: int  # epoch ms
    severity: str = WARNING
    product_id: str | None = None
    source: str | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp,
            "severity": self.severity,
        }
        if self.product_id is not None:
            record["productId"] = self.product_id
        if self.source is not None:
            record["source"] = self.source
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any], fallback_ms: int | None = None) -> "Notification":
        timestamp = record.get("timestamp")
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            timestamp = fallback_ms if fallback_ms is not None else now_ms()
        product_id = record.get("productId")
        return cls(
            id=str(record.get("id") or ""),
            title=str(record.get("title") or ""),
            message=str(record.get("message") or ""),
            timestamp=int(timestamp),
            severity=str(record.get("severity") or record.get("type") or WARNING),
            product_id=str(product_id) if product_id not in (None, "") else None,
            source=record.get("source"),
        )

    def to_display(self, now: datetime | None = None) -> dict[str, Any]:
        """Record plus the read-time labels."""
        return {
            **self.to_record(),
            "relativeTime": format_relative_time(self.timestamp, now),
            "formattedTime": datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc).isoformat(),
        }


# ──────────────────────────────────────────────────────────────────────────
# Relative Time
# ──────────────────────────────────────────────────────────────────────────


def format_relative_time(timestamp_ms: int, now: datetime | None = None) -> str:
    diff = max(0, now_ms(now) - timestamp_ms)
    seconds = diff // 1000
    minutes = diff // 60_000
    if seconds < 60:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    weeks = days // 7
    if weeks < 4:
        return f"{weeks}w ago"
    months = days // 30
    if months < 12:
        return f"{months}mo ago"
    return f"{days // 365}y ago"


# ──────────────────────────────────────────────────────────────────────────
# Reconciliation Keys
# ──────────────────────────────────────────────────────────────────────────

KeyStrategy = Callable[[Notification], list[str]]

_KEY_STRATEGIES: dict[str, KeyStrategy] = {}


def triple_keys(notification: Notification) -> list[str]:
    """Raw id, then product, then title+product."""
    keys = [notification.id]
    if notification.product_id:
        keys.append(f"product-{notification.product_id}")
        if notification.title:
            keys.append(f"{notification.title}-{notification.product_id}")
    return keys


def register_key_strategy(source: str) -> Callable[[KeyStrategy], KeyStrategy]:
    """Decorator: register the matching keys a producer's notifications answer to."""

    def decorator(strategy: KeyStrategy) -> KeyStrategy:
        _KEY_STRATEGIES[source] = strategy
        return strategy

    return decorator


register_key_strategy(DEPLETION_SOURCE)(triple_keys)
register_key_strategy(LOW_STOCK_SOURCE)(triple_keys)


def candidate_keys(notification: Notification) -> list[str]:
    strategy = _KEY_STRATEGIES.get(notification.source or "", triple_keys)
    return strategy(notification)


def build_notification_index(existing: list[Notification]) -> dict[str, Notification]:
    """Index existing notifications by every candidate key; later entries win."""
    index: dict[str, Notification] = {}
    for notification in existing:
        if not notification.id:
            continue
        for key in candidate_keys(notification):
            index[key] = notification
    return index


def find_existing(candidate: Notification, index: dict[str, Notification]) -> Notification | None:
    """
    Walk the candidate's keys in order. A hit with a byte-identical message
    wins over an earlier, looser hit, so a notification whose rank moved is
    still matched to its own predecessor rather than another producer's entry
    for the same product.
    """
    first = None
    for key in candidate_keys(candidate):
        match = index.get(key)
        if match is None:
            continue
        if match.message == candidate.message:
            return match
        if first is None:
            first = match
    return first


# ──────────────────────────────────────────────────────────────────────────
# Producers
# ──────────────────────────────────────────────────────────────────────────


def low_stock_message(product: Product) -> str:
    return f"{product.name or 'Product'} ({product.sku or 'N/A'}) is low - {product.stock} units remaining"


def depletion_title(alert: Alert) -> str:
    return CRITICAL_DEPLETION_TITLE if alert.severity == CRITICAL else WARNING_DEPLETION_TITLE


def depletion_message(alert: Alert) -> str:
    if alert.days_remaining <= 1:
        return f"{alert.name} predicted to run out in 1 day"
    return f"{alert.name} predicted to run out in {alert.days_remaining} days"


def depletion_candidates(alerts: list[Alert], limit: int, timestamp: int) -> list[Notification]:
    return [
        Notification(
            id=f"ai-{alert.id}-{rank}",
            title=depletion_title(alert),
            message=depletion_message(alert),
            timestamp=timestamp,
            severity=alert.severity,
            product_id=alert.product_id,
            source=DEPLETION_SOURCE,
        )
        for rank, alert in enumerate(alerts[:limit])
    ]


def low_stock_candidates(products: list[Product], limit: int, timestamp: int) -> list[Notification]:
    return [
        Notification(
            id=product.id or f"low-{index}",
            title=LOW_STOCK_TITLE,
            message=low_stock_message(product),
            timestamp=timestamp,
            severity=CRITICAL if product.stock <= 0 else WARNING,
            product_id=product.id or None,
            source=LOW_STOCK_SOURCE,
        )
        for index, product in enumerate(products[:limit])
    ]


# ──────────────────────────────────────────────────────────────────────────
# Reconciliation
# ──────────────────────────────────────────────────────────────────────────


def reconcile_notifications(
    candidates: list[Notification],
    existing: list[Notification],
    now: datetime | None = None,
) -> list[Notification]:
    """Carry timestamps over from matching notifications whose message is unchanged."""
    current = now_ms(now)
    index = build_notification_index(existing)
    reconciled = []
    for candidate in candidates:
        match = find_existing(candidate, index)
        timestamp = match.timestamp if match is not None and match.message == candidate.message else current
        reconciled.append(replace(candidate, timestamp=timestamp))
    return reconciled


@dataclass(frozen=True)
class FeedUpdate:
    notifications: list[Notification]
    changed: bool  # False means the persisted feed must be left as it is


def reconcile_feed(
    alerts: list[Alert],
    low_stock: list[Product],
    existing: list[Notification],
    config: AlertingConfig,
    now: datetime | None = None,
) -> FeedUpdate:
    """
    Build the feed for this cycle: depletion notifications, then low-stock ones.

    A cycle that produced nothing keeps the existing feed instead of clearing it.
    """
    if not alerts and not low_stock:
        return FeedUpdate(notifications=list(existing), changed=False)

    current = now_ms(now)
    candidates = depletion_candidates(alerts, config.ai_notification_limit, current) + low_stock_candidates(
        low_stock, config.low_stock_notification_limit, current
    )
    reconciled = reconcile_notifications(candidates, existing, now)
    preserved = sum(1 for n in reconciled if n.timestamp != current)
    logger.debug("notifications.reconciled", total=len(reconciled), preserved=preserved, existing=len(existing))
    return FeedUpdate(notifications=reconciled, changed=True)
