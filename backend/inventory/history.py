"""
Sales History Extractor — paid invoices → per-product sales samples.

Pure filter/map: keeps invoices with status ``Paid`` whose date parses
and falls inside the lookback window, then emits one SalesSample per
line item with a resolvable product id and a positive quantity.

Dates arrive as ISO (``2026-03-04``, ``2026-03-04T10:15:00Z``) or as
slash dates from CSV imports (``3/4/2026``, month first). Naive values
are treated as UTC. Anything else is skipped, never defaulted to now.
"""

from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog

from inventory.models import Invoice, SalesSample

logger = structlog.get_logger()

DEFAULT_LOOKBACK_DAYS = 90
SLASH_DATE_FORMAT = "%m/%d/%Y"


def parse_invoice_date(value: Any) -> datetime | None:
    """Parse an invoice date into an aware UTC datetime, or None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if "/" in text:
                parsed = datetime.strptime(text, SLASH_DATE_FORMAT)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_sales_samples(
    invoices: Iterable[Invoice],
    now: datetime | None = None,
    lookback_days: int | None = DEFAULT_LOOKBACK_DAYS,
) -> list[SalesSample]:
    """
    Turn paid invoices into sales samples.

    ``lookback_days=None`` disables the window (full history, used by the
    reporting rollups). Invoices dated in the future are kept.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=lookback_days) if lookback_days is not None else None

    samples: list[SalesSample] = []
    skipped_dates = 0
    for invoice in invoices:
        if not invoice.is_paid:
            continue
        invoice_time = parse_invoice_date(invoice.invoice_date)
        if invoice_time is None:
            skipped_dates += 1
            continue
        if cutoff is not None and invoice_time < cutoff:
            continue

        for item in invoice.items:
            if item.product_id is None or item.quantity <= 0:
                continue
            samples.append(
                SalesSample(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    timestamp=invoice_time,
                    unit_price=item.unit_price,
                    product_name=item.product_name,
                    invoice_id=invoice.invoice_id,
                )
            )

    if skipped_dates:
        logger.debug("history.unparseable_dates_skipped", count=skipped_dates)
    return samples
