"""Totals engine: derives the monetary fields of an invoice.

Request-driven: callers invoke :func:`recompute` after changing items, tax
rate, discount, shipping or amount paid. No rounding happens here; two-decimal
rounding is a display concern (see ``utils.formatters``).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from invoice_craft.models.invoice import DiscountType, Invoice


def recompute(invoice: Invoice) -> Invoice:
    """Return *invoice* with line amounts and derived totals rewritten.

    Pure and idempotent. Out-of-range discount or tax values are not
    clamped and NaN inputs propagate to every derived field.
    """
    items = tuple(replace(item, amount=item.quantity * item.rate) for item in invoice.items)
    subtotal = sum((item.amount for item in items), 0)
    if invoice.discount_type == DiscountType.PERCENTAGE:
        discount_amount = subtotal * invoice.discount_value / 100
    else:
        discount_amount = invoice.discount_value
    after_discount = subtotal - discount_amount
    tax_amount = after_discount * invoice.tax_rate / 100
    total = after_discount + tax_amount + invoice.shipping_amount
    balance_due = total - invoice.amount_paid

    return replace(
        invoice,
        items=items,
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=total,
        balance_due=balance_due,
    )


@dataclass(frozen=True)
class CollectionSummary:
    count: int
    total_amount: float
    this_month: int


def summarize(invoices: Iterable[Invoice], today: datetime | None = None) -> CollectionSummary:
    """Count, summed totals, and how many invoices are dated this month."""
    today = today or datetime.now(UTC)
    count = 0
    total_amount = 0.0
    this_month = 0
    for inv in invoices:
        count += 1
        total_amount += inv.total
        if inv.date[:7] == f"{today.year:04d}-{today.month:02d}":
            this_month += 1
    return CollectionSummary(count=count, total_amount=total_amount, this_month=this_month)
