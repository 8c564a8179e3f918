"""
Inventory domain records: products, invoices and derived sales samples.

The CRUD backend emits several spellings for the same field
(``Product_stock`` vs ``stock``, ``reorder_level`` vs ``threshold``).
Every record is normalised here once so the engine only sees one shape.
Numeric fields are coerced defensively: anything missing or malformed
becomes 0 instead of raising.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

PAID_STATUS = "Paid"


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Parse a number from loose backend input. Never raises."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def coerce_int(value: Any, default: int = 0) -> int:
    """Parse an integer count from loose backend input. Never raises."""
    return int(coerce_float(value, float(default)))


def first_present(record: dict[str, Any], *keys: str) -> Any:
    """Return the first alias that is present and not None/empty."""
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


@dataclass(frozen=True)
class Product:
    """Product as seen by the engine. Read-only; owned by the CRUD backend."""

    id: str
    name: str
    sku: str
    stock: int = 0
    reorder_threshold: int = 0
    category: str | None = None
    price: float = 0.0

    @classmethod
    def from_record(cls, record: dict[str, Any], index: int = 0) -> "Product":
        product_id = first_present(record, "Product_id", "product_id", "id", "Product_sku")
        if product_id is None:
            product_id = index + 1
        return cls(
            id=str(product_id),
            name=str(first_present(record, "Product_name", "name") or "Inventory Item"),
            sku=str(first_present(record, "Product_sku", "sku") or f"SKU-{index + 1}"),
            stock=coerce_int(first_present(record, "Product_stock", "stock")),
            reorder_threshold=coerce_int(first_present(record, "reorder_level", "threshold")),
            category=first_present(record, "Product_category", "category"),
            price=coerce_float(first_present(record, "Product_price", "price")),
        )

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.reorder_threshold


@dataclass(frozen=True)
class InvoiceItem:
    product_id: str | None
    quantity: float
    unit_price: float = 0.0
    product_name: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "InvoiceItem":
        raw_id = first_present(record, "product_id", "productId", "Product_id", "ProductID")
        return cls(
            product_id=str(raw_id) if raw_id is not None else None,
            quantity=coerce_float(first_present(record, "quantity", "Quantity")),
            unit_price=coerce_float(first_present(record, "unit_price", "unitPrice", "price", "Price")),
            product_name=first_present(record, "product_name", "Product_name"),
        )


@dataclass(frozen=True)
class Invoice:
    status: str
    invoice_date: Any
    items: list[InvoiceItem] = field(default_factory=list)
    invoice_id: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Invoice":
        raw_items = record.get("items")
        items = [InvoiceItem.from_record(item) for item in raw_items if isinstance(item, dict)] if isinstance(raw_items, list) else []
        invoice_id = first_present(record, "invoice_id", "Invoice_id", "id")
        return cls(
            status=str(record.get("status") or ""),
            invoice_date=first_present(record, "invoice_date", "invoiceDate", "created_at"),
            items=items,
            invoice_id=str(invoice_id) if invoice_id is not None else None,
        )

    @property
    def is_paid(self) -> bool:
        return self.status == PAID_STATUS


@dataclass(frozen=True)
class SalesSample:
    """One paid line item: a quantity of a product sold at a point in time."""

    product_id: str
    quantity: float
    timestamp: datetime
    unit_price: float = 0.0
    product_name: str | None = None
    invoice_id: str | None = None


@dataclass(frozen=True)
class UsageEstimate:
    """Daily usage rate for one product, from history or the heuristic baseline."""

    product_id: str
    daily_usage_rate: float
    window_days: int
    sample_total_quantity: float
    from_history: bool


def normalize_products(records: list[dict[str, Any]] | None) -> list[Product]:
    if not isinstance(records, list):
        return []
    return [Product.from_record(record, index) for index, record in enumerate(records) if isinstance(record, dict)]


def normalize_invoices(records: list[dict[str, Any]] | None) -> list[Invoice]:
    if not isinstance(records, list):
        return []
    return [Invoice.from_record(record) for record in records if isinstance(record, dict)]
