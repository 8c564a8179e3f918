"""
AIventory Backend Client

Read-only access to the CRUD backend: product catalog and invoices.
Transport errors and non-2xx responses are retried with exponential
backoff, then surfaced as BackendUnavailableError so the alert cycle can
degrade instead of crashing.
"""

from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import Settings, get_settings
from inventory.models import Invoice, Product, normalize_invoices, normalize_products

logger = structlog.get_logger()


class BackendUnavailableError(RuntimeError):
    """The CRUD backend could not be reached or answered with an error."""


class InventoryBackendClient:
    """Client for the products/invoices endpoints of the CRUD backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "InventoryBackendClient":
        settings = settings or get_settings()
        return cls(settings.backend_api_url, timeout=settings.backend_api_timeout_seconds)

    async def _get_json(self, path: str) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    async with httpx.AsyncClient(
                        base_url=self.base_url, timeout=self.timeout, transport=self.transport
                    ) as client:
                        response = await client.get(path)
                        response.raise_for_status()
                        return response.json()
        except httpx.HTTPError as exc:
            logger.warning("backend.request_failed", path=path, error=str(exc))
            raise BackendUnavailableError(f"GET {path} failed: {exc}") from exc
        except ValueError as exc:
            logger.warning("backend.invalid_json", path=path, error=str(exc))
            raise BackendUnavailableError(f"GET {path} returned invalid JSON") from exc

    async def get_products(self) -> list[Product]:
        """Fetch and normalise the product catalog."""
        payload = await self._get_json("/products")
        return normalize_products(_unwrap(payload))

    async def get_invoices(self) -> list[Invoice]:
        """Fetch and normalise all invoices (with line items)."""
        payload = await self._get_json("/invoices")
        return normalize_invoices(_unwrap(payload))


def _unwrap(payload: Any) -> list[dict[str, Any]]:
    """Accept either a bare JSON array or ``{"data": [...]}``."""
    if isinstance(payload, dict):
        payload = payload.get("data")
    return payload if isinstance(payload, list) else []
