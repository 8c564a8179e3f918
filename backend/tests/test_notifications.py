"""
Tests for the Notification Reconciler.

Covers:
  - Message templates and producer caps
  - Timestamp preservation across cycles
  - Multi-key matching between producers
  - Empty cycles never clearing the feed
  - Relative time labels
"""

from datetime import timedelta

import pytest

from alerts import notifications as notifications_module
from alerts.engine import CRITICAL, WARNING, Alert
from alerts.notifications import (
    DEPLETION_SOURCE,
    LOW_STOCK_SOURCE,
    Notification,
    build_notification_index,
    candidate_keys,
    depletion_candidates,
    depletion_message,
    format_relative_time,
    low_stock_candidates,
    low_stock_message,
    now_ms,
    reconcile_feed,
    reconcile_notifications,
    register_key_strategy,
)
from core.config import AlertingConfig
from inventory.models import Product


def _alert(pid, severity=CRITICAL, days=7, name="Whole Milk"):
    return Alert(
        product_id=pid,
        name=name,
        sku=f"SKU-{pid}",
        stock=5,
        threshold=10,
        daily_usage_rate=0.7,
        days_remaining=days,
        severity=severity,
    )


def _product(pid, stock=5, threshold=10):
    return Product(id=pid, name=f"Item {pid}", sku=f"SKU-{pid}", stock=stock, reorder_threshold=threshold)


# ── Templates ──────────────────────────────────────────────────────────


class TestMessages:
    def test_low_stock_message(self):
        product = Product(id="P1", name="Whole Milk", sku="MILK-1", stock=5, reorder_threshold=10)
        assert low_stock_message(product) == "Whole Milk (MILK-1) is low - 5 units remaining"

    def test_depletion_message_singular(self):
        assert depletion_message(_alert("P1", days=1)) == "Whole Milk predicted to run out in 1 day"

    def test_depletion_message_plural(self):
        assert depletion_message(_alert("P1", days=7)) == "Whole Milk predicted to run out in 7 days"


# ── Producers ──────────────────────────────────────────────────────────


class TestProducers:
    def test_depletion_capped_and_ranked_ids(self, now):
        alerts = [_alert(f"P{i}") for i in range(5)]
        produced = depletion_candidates(alerts, limit=3, timestamp=now_ms(now))
        assert [n.id for n in produced] == ["ai-P0-0", "ai-P1-1", "ai-P2-2"]
        assert all(n.source == DEPLETION_SOURCE for n in produced)

    def test_depletion_titles_by_severity(self, now):
        produced = depletion_candidates([_alert("A", CRITICAL), _alert("B", WARNING)], 3, now_ms(now))
        assert [n.title for n in produced] == ["Critical AI Alert", "AI Prediction Alert"]

    def test_low_stock_capped(self, now):
        products = [_product(f"P{i}") for i in range(7)]
        produced = low_stock_candidates(products, limit=5, timestamp=now_ms(now))
        assert len(produced) == 5
        assert produced[0].id == "P0"
        assert produced[0].title == "Low Stock Alert"
        assert produced[0].source == LOW_STOCK_SOURCE

    def test_out_of_stock_is_critical(self, now):
        produced = low_stock_candidates([_product("A", stock=0), _product("B", stock=3)], 5, now_ms(now))
        assert [n.severity for n in produced] == [CRITICAL, WARNING]


# ── Reconciliation Keys ────────────────────────────────────────────────


class TestReconciliationKeys:
    def test_triple_keys(self):
        notification = Notification(id="ai-P1-0", title="Critical AI Alert", message="m", timestamp=0, product_id="P1")
        assert candidate_keys(notification) == ["ai-P1-0", "product-P1", "Critical AI Alert-P1"]

    def test_without_product_only_id(self):
        assert candidate_keys(Notification(id="n1", title="t", message="m", timestamp=0)) == ["n1"]

    def test_later_entries_win(self):
        first = Notification(id="a", title="t", message="m", timestamp=1, product_id="P1")
        second = Notification(id="b", title="t", message="m", timestamp=2, product_id="P1")
        index = build_notification_index([first, second])
        assert index["product-P1"] is second
        assert index["a"] is first

    def test_entries_without_id_not_indexed(self):
        assert build_notification_index([Notification(id="", title="t", message="m", timestamp=1, product_id="P1")]) == {}

    def test_custom_producer_strategy(self, monkeypatch):
        monkeypatch.setattr(notifications_module, "_KEY_STRATEGIES", dict(notifications_module._KEY_STRATEGIES))

        @register_key_strategy("supplier")
        def supplier_keys(notification):
            return [f"supplier-{notification.product_id}"]

        notification = Notification(id="s1", title="t", message="m", timestamp=0, product_id="P9", source="supplier")
        assert candidate_keys(notification) == ["supplier-P9"]


# ── Timestamp Preservation ─────────────────────────────────────────────


class TestReconcileNotifications:
    def test_unchanged_message_keeps_timestamp(self, now):
        earlier = now_ms(now - timedelta(hours=2))
        existing = [Notification(id="ai-P1-0", title="Critical AI Alert", message="same", timestamp=earlier, product_id="P1")]
        candidate = Notification(id="ai-P1-0", title="Critical AI Alert", message="same", timestamp=0, product_id="P1")
        [result] = reconcile_notifications([candidate], existing, now)
        assert result.timestamp == earlier

    def test_changed_message_gets_new_timestamp(self, now):
        existing = [Notification(id="ai-P1-0", title="t", message="in 7 days", timestamp=1, product_id="P1")]
        candidate = Notification(id="ai-P1-0", title="t", message="in 6 days", timestamp=0, product_id="P1")
        [result] = reconcile_notifications([candidate], existing, now)
        assert result.timestamp == now_ms(now)

    def test_matches_by_product_across_ids(self, now):
        earlier = now_ms(now - timedelta(days=1))
        existing = [Notification(id="legacy-7", title="Old title", message="same", timestamp=earlier, product_id="P1")]
        candidate = Notification(id="ai-P1-0", title="Critical AI Alert", message="same", timestamp=0, product_id="P1")
        [result] = reconcile_notifications([candidate], existing, now)
        assert result.timestamp == earlier
        assert result.id == "ai-P1-0"

    def test_new_notification_stamped_now(self, now):
        candidate = Notification(id="P3", title="Low Stock Alert", message="m", timestamp=0, product_id="P3")
        [result] = reconcile_notifications([candidate], [], now)
        assert result.timestamp == now_ms(now)


class TestReconcileFeed:
    def test_depletion_then_low_stock(self, now, config):
        update = reconcile_feed([_alert("P4"), _alert("P1")], [_product("P1"), _product("P4")], [], config, now)
        assert update.changed
        assert [n.id for n in update.notifications] == ["ai-P4-0", "ai-P1-1", "P1", "P4"]

    def test_empty_cycle_keeps_existing_feed(self, now, config):
        existing = [Notification(id="ai-P1-0", title="t", message="m", timestamp=123, product_id="P1")]
        update = reconcile_feed([], [], existing, config, now)
        assert not update.changed
        assert update.notifications == existing

    def test_second_cycle_preserves_all_timestamps(self, now, config):
        alerts = [_alert("P4", days=1), _alert("P1")]
        low = [_product("P1"), _product("P4", stock=0)]
        first = reconcile_feed(alerts, low, [], config, now)
        second = reconcile_feed(alerts, low, first.notifications, config, now + timedelta(minutes=5))
        assert [n.timestamp for n in second.notifications] == [n.timestamp for n in first.notifications]

    def test_rank_shift_keeps_timestamp(self, now, config):
        milk = _alert("P1", days=7, name="Item P1")
        first = reconcile_feed([milk], [_product("P1")], [], config, now)

        later = now + timedelta(hours=1)
        urgent = _alert("P9", days=1, name="Item P9")
        second = reconcile_feed([urgent, milk], [_product("P1"), _product("P9")], first.notifications, config, later)

        by_id = {n.id: n for n in second.notifications}
        assert by_id["ai-P1-1"].message == "Item P1 predicted to run out in 7 days"
        assert by_id["ai-P1-1"].timestamp == now_ms(now)
        assert by_id["P1"].timestamp == now_ms(now)
        assert by_id["ai-P9-0"].timestamp == now_ms(later)

    def test_identical_message_preferred_over_looser_key(self, now):
        earlier = now_ms(now - timedelta(hours=3))
        existing = [
            Notification(id="ai-P1-0", title="Critical AI Alert", message="same", timestamp=earlier, product_id="P1"),
            Notification(id="P1", title="Low Stock Alert", message="other", timestamp=1, product_id="P1"),
        ]
        candidate = Notification(id="ai-P1-2", title="Critical AI Alert", message="same", timestamp=0, product_id="P1")
        [result] = reconcile_notifications([candidate], existing, now)
        assert result.timestamp == earlier

    def test_limits_from_config(self, now):
        config = AlertingConfig(ai_notification_limit=1, low_stock_notification_limit=0)
        update = reconcile_feed([_alert("A"), _alert("B")], [_product("A")], [], config, now)
        assert [n.id for n in update.notifications] == ["ai-A-0"]


# ── Records ────────────────────────────────────────────────────────────


class TestNotificationRecords:
    def test_record_round_trip(self):
        notification = Notification(
            id="ai-P1-0", title="Critical AI Alert", message="m", timestamp=5, severity=CRITICAL, product_id="P1", source=DEPLETION_SOURCE
        )
        assert Notification.from_record(notification.to_record()) == notification

    def test_legacy_record_without_timestamp(self):
        notification = Notification.from_record({"id": "n1", "title": "t", "message": "m", "type": "critical"}, fallback_ms=99)
        assert notification.timestamp == 99
        assert notification.severity == CRITICAL
        assert notification.product_id is None

    def test_display_fields(self, now):
        notification = Notification(id="n1", title="t", message="m", timestamp=now_ms(now - timedelta(minutes=5)))
        display = notification.to_display(now)
        assert display["relativeTime"] == "5m ago"
        assert display["formattedTime"].startswith("2026-03-15T11:55:00")


# ── Relative Time ──────────────────────────────────────────────────────


class TestRelativeTime:
    @pytest.mark.parametrize(
        "age, label",
        [
            (timedelta(seconds=30), "Just now"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=3), "3h ago"),
            (timedelta(days=2), "2d ago"),
            (timedelta(days=14), "2w ago"),
            (timedelta(days=28), "0mo ago"),
            (timedelta(days=60), "2mo ago"),
            (timedelta(days=400), "1y ago"),
        ],
    )
    def test_labels(self, now, age, label):
        assert format_relative_time(now_ms(now - age), now) == label

    def test_future_timestamp_is_just_now(self, now):
        assert format_relative_time(now_ms(now + timedelta(minutes=3)), now) == "Just now"
