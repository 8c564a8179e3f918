"""
Celery Application Configuration
"""

from celery import Celery

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "aiventory",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.alert_cycle.*": {"queue": "alerts"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        # ── Alerting ───────────────────────────────────────────────
        "alert-cycle-poll": {
            "task": "workers.alert_cycle.run_alert_cycle",
            "schedule": settings.alert_poll_interval_seconds,
            "options": {"queue": "alerts", "expires": settings.alert_poll_interval_seconds},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["workers"])
