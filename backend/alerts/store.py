"""
Notification Store — the persisted feed as one JSON document under a fixed key.

Backends:
  - RedisNotificationStore: GET/SET on a Redis key (default)
  - FileNotificationStore:  local JSON key-value file
  - InMemoryNotificationStore: tests and local dev

Read and write failures never propagate into the alerting cycle: a failed
read yields an empty feed, a failed write is logged and dropped.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

import redis.asyncio as aioredis
import structlog

from alerts.notifications import Notification, now_ms
from core.config import Settings, get_settings

logger = structlog.get_logger()

DEFAULT_KEY = "notifications"


class NotificationStore(ABC):
    """Key-value blob store holding the notification feed."""

    def __init__(self, key: str = DEFAULT_KEY):
        self.key = key

    @abstractmethod
    async def read_blob(self) -> str | None:
        ...

    @abstractmethod
    async def write_blob(self, payload: str) -> None:
        ...

    async def load(self, now: datetime | None = None) -> list[Notification]:
        """Read the persisted feed. Returns [] on any failure."""
        try:
            payload = await self.read_blob()
            if not payload:
                return []
            records = json.loads(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("notifications.store.read_failed", key=self.key, error=str(exc), exc_info=True)
            return []

        if not isinstance(records, list):
            logger.warning("notifications.store.unexpected_document", key=self.key, kind=type(records).__name__)
            return []
        fallback = now_ms(now)
        return [Notification.from_record(record, fallback) for record in records if isinstance(record, dict)]

    async def save(self, notifications: list[Notification]) -> bool:
        """Replace the persisted feed. Returns False (and logs) on failure."""
        payload = json.dumps([n.to_record() for n in notifications])
        try:
            await self.write_blob(payload)
        except Exception as exc:  # noqa: BLE001
            logger.error("notifications.store.write_failed", key=self.key, error=str(exc), exc_info=True)
            return False
        return True


class RedisNotificationStore(NotificationStore):
    def __init__(self, redis_url: str, key: str = DEFAULT_KEY):
        super().__init__(key)
        self.redis_url = redis_url

    async def read_blob(self) -> str | None:
        redis = aioredis.from_url(self.redis_url, decode_responses=True)
        try:
            return await redis.get(self.key)
        finally:
            await redis.aclose()

    async def write_blob(self, payload: str) -> None:
        redis = aioredis.from_url(self.redis_url, decode_responses=True)
        try:
            await redis.set(self.key, payload)
        finally:
            await redis.aclose()


class FileNotificationStore(NotificationStore):
    """A JSON object on disk mapping keys to blobs."""

    def __init__(self, path: str | Path, key: str = DEFAULT_KEY):
        super().__init__(key)
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        return data if isinstance(data, dict) else {}

    def _write(self, payload: str) -> None:
        try:
            data = self._read_all()
        except ValueError as exc:
            # An undecodable document is replaced by this write.
            logger.warning("notifications.store.file_reset", path=str(self.path), error=str(exc))
            data = {}
        data[self.key] = payload
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def read_blob(self) -> str | None:
        data = await asyncio.to_thread(self._read_all)
        return data.get(self.key)

    async def write_blob(self, payload: str) -> None:
        await asyncio.to_thread(self._write, payload)


class InMemoryNotificationStore(NotificationStore):
    def __init__(self, key: str = DEFAULT_KEY, initial: str | None = None):
        super().__init__(key)
        self.blobs: dict[str, str] = {}
        if initial is not None:
            self.blobs[key] = initial

    async def read_blob(self) -> str | None:
        return self.blobs.get(self.key)

    async def write_blob(self, payload: str) -> None:
        self.blobs[self.key] = payload


def get_notification_store(settings: Settings | None = None) -> NotificationStore:
    """Build the store configured by ``notification_store_backend``."""
    settings = settings or get_settings()
    backend = settings.notification_store_backend.strip().lower()
    if backend == "redis":
        return RedisNotificationStore(settings.redis_url, settings.notification_store_key)
    if backend == "file":
        return FileNotificationStore(settings.notification_store_path, settings.notification_store_key)
    if backend == "memory":
        return InMemoryNotificationStore(settings.notification_store_key)
    raise ValueError(f"Unknown notification store backend: {settings.notification_store_backend!r}")


# ──────────────────────────────────────────────────────────────────────────
# Feed operations
# ──────────────────────────────────────────────────────────────────────────


class NotificationFeed:
    """Read/clear/dismiss operations over a store, for the API layer."""

    def __init__(self, store: NotificationStore):
        self.store = store

    async def read(self, now: datetime | None = None) -> list[dict]:
        notifications = await self.store.load(now)
        return [n.to_display(now) for n in notifications]

    async def clear(self) -> bool:
        logger.info("notifications.feed.cleared", key=self.store.key)
        return await self.store.save([])

    async def dismiss(self, notification_id: str) -> bool:
        """Remove one notification. Returns False when it was not in the feed."""
        notifications = await self.store.load()
        remaining = [n for n in notifications if n.id != notification_id]
        if len(remaining) == len(notifications):
            return False
        return await self.store.save(remaining)
