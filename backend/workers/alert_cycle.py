"""
Alert Cycle — fetch, classify, reconcile, persist.

One cycle:
  1. Load the persisted notification feed (failure → empty feed)
  2. Fetch products (and invoices when the usage profile reads history)
  3. Classify alerts and build the inventory summary
  4. Reconcile the feed and persist it

Cycles are sequenced. Each start takes the next number from a monotonic
counter; a cycle that finishes after a newer one has started is
discarded without touching the store or the published state. Timer ticks
that arrive while a cycle is in flight are ignored, a manual refresh
always starts a new cycle.

If the backend is unavailable the cycle degrades: counters and alerts
reset to empty, and the last persisted feed is re-read and kept.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from alerts.engine import Alert, InventorySummary, evaluate_inventory, select_dashboard_highlights
from alerts.notifications import Notification, reconcile_feed
from alerts.store import NotificationStore, get_notification_store
from core.config import AlertingConfig, build_alerting_config
from integrations.backend_api import BackendUnavailableError, InventoryBackendClient
from workers.celery_app import celery_app

logger = structlog.get_logger()

SUCCESS = "success"
DEGRADED = "degraded"
STALE = "stale"
SKIPPED = "skipped"


@dataclass
class CycleResult:
    sequence: int
    status: str
    alerts: list[Alert] = field(default_factory=list)
    summary: InventorySummary = field(default_factory=InventorySummary)
    notifications: list[Notification] = field(default_factory=list)
    persisted: bool = False
    error: str | None = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        critical, warning = select_dashboard_highlights(self.alerts)
        return {
            "sequence": self.sequence,
            "status": self.status,
            "alerts": len(self.alerts),
            "notifications": len(self.notifications),
            "persisted": self.persisted,
            "error": self.error,
            "summary": self.summary.to_dict(),
            "highlights": {
                "critical": critical.to_dict() if critical else None,
                "warning": warning.to_dict() if warning else None,
            },
            "completed_at": self.completed_at.isoformat(),
        }


async def run_cycle_once(
    backend: InventoryBackendClient,
    store: NotificationStore,
    config: AlertingConfig,
    sequence: int = 0,
    now: datetime | None = None,
    is_current: Callable[[], bool] = lambda: True,
) -> CycleResult:
    now = now or datetime.now(timezone.utc)
    existing = await store.load(now)

    try:
        products = await backend.get_products()
        invoices = await backend.get_invoices() if config.usage.use_sales_history else []
    except BackendUnavailableError as exc:
        logger.warning("alerts.cycle.backend_unavailable", sequence=sequence, error=str(exc))
        # Keep whatever the store still holds.
        preserved = await store.load(now)
        return CycleResult(sequence=sequence, status=DEGRADED, notifications=preserved, error=str(exc))

    evaluation = evaluate_inventory(products, invoices, config, now)
    update = reconcile_feed(evaluation.alerts, evaluation.low_stock, existing, config, now)

    if not is_current():
        logger.info("alerts.cycle.stale_discarded", sequence=sequence)
        return CycleResult(sequence=sequence, status=STALE, alerts=evaluation.alerts, summary=evaluation.summary)

    persisted = await store.save(update.notifications) if update.changed else False
    result = CycleResult(
        sequence=sequence,
        status=SUCCESS,
        alerts=evaluation.alerts,
        summary=evaluation.summary,
        notifications=update.notifications,
        persisted=persisted,
    )
    logger.info(
        "alerts.cycle.completed",
        sequence=sequence,
        alerts=len(result.alerts),
        notifications=len(result.notifications),
        feed_changed=update.changed,
        persisted=persisted,
    )
    return result


class AlertCycleRunner:
    """Single-writer scheduler for alert cycles in one process."""

    def __init__(
        self,
        backend: InventoryBackendClient,
        store: NotificationStore,
        config_factory: Callable[[], AlertingConfig] = build_alerting_config,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.backend = backend
        self.store = store
        self.config_factory = config_factory
        self.clock = clock
        self.latest_sequence = 0
        self.in_flight = 0
        self.state: CycleResult | None = None

    def _is_current(self, sequence: int) -> bool:
        return sequence == self.latest_sequence

    async def _run(self) -> CycleResult:
        self.latest_sequence += 1
        sequence = self.latest_sequence
        self.in_flight += 1
        try:
            result = await run_cycle_once(
                self.backend,
                self.store,
                self.config_factory(),
                sequence=sequence,
                now=self.clock(),
                is_current=lambda: self._is_current(sequence),
            )
        finally:
            self.in_flight -= 1

        if result.status != STALE and self._is_current(sequence):
            self.state = result
        return result

    async def tick(self) -> CycleResult:
        """Timer-driven cycle; ignored while another cycle is running."""
        if self.in_flight:
            logger.debug("alerts.cycle.tick_skipped", in_flight=self.in_flight)
            return CycleResult(sequence=self.latest_sequence, status=SKIPPED)
        return await self._run()

    async def refresh(self) -> CycleResult:
        """User-driven cycle; always runs and supersedes any in-flight cycle."""
        return await self._run()

    async def run_forever(self, interval_seconds: float, max_cycles: int | None = None) -> None:
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            await self.tick()
            cycles += 1
            if max_cycles is None or cycles < max_cycles:
                await asyncio.sleep(interval_seconds)


# ──────────────────────────────────────────────────────────────────────────
# Celery entry point
# ──────────────────────────────────────────────────────────────────────────


@celery_app.task(
    name="workers.alert_cycle.run_alert_cycle",
    bind=True,
    max_retries=1,
    default_retry_delay=30,
)
def run_alert_cycle(self, profile: str | None = None):
    """Run one alert cycle against the configured backend and store."""
    run_id = self.request.id or "manual"
    logger.info("alerts.cycle.started", run_id=run_id, profile=profile)

    async def _cycle():
        runner = AlertCycleRunner(
            backend=InventoryBackendClient.from_settings(),
            store=get_notification_store(),
            config_factory=lambda: build_alerting_config(profile=profile),
        )
        return await runner.refresh()

    try:
        result = asyncio.run(_cycle())
    except Exception as exc:  # noqa: BLE001
        logger.error("alerts.cycle.failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
    return {"run_id": run_id, **result.to_dict()}
