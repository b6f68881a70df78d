from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum
from typing import Any

DEFAULT_COMPANY_NAME = "Your Company Name"
DEFAULT_PAYMENT_TERMS = "Net 30"
DEFAULT_TERMS = "Thank you for your business!"
DUE_IN_DAYS = 30


class DiscountType(StrEnum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class LineItem:
    id: str
    description: str = ""
    quantity: float = 1
    rate: float = 0
    amount: float = 0

    @classmethod
    def from_dict(cls, d: dict) -> LineItem:
        return cls(
            id=d["id"],
            description=d.get("description", ""),
            quantity=d.get("quantity", 0),
            rate=d.get("rate", 0),
            amount=d.get("amount", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "rate": self.rate,
            "amount": self.amount,
        }


def new_line_item() -> LineItem:
    """Blank line: quantity 1, rate 0."""
    return LineItem(id=_new_id())


# snake_case attribute -> persisted camelCase key, for the plain scalar fields
_FIELD_KEYS: dict[str, str] = {
    "invoice_number": "invoiceNumber",
    "date": "date",
    "due_date": "dueDate",
    "payment_terms": "paymentTerms",
    "po_number": "poNumber",
    "company_logo": "companyLogo",
    "company_name": "companyName",
    "bill_to_name": "billToName",
    "bill_to_address": "billToAddress",
    "bill_to_city": "billToCity",
    "bill_to_state": "billToState",
    "bill_to_zip": "billToZip",
    "ship_to_name": "shipToName",
    "ship_to_address": "shipToAddress",
    "ship_to_city": "shipToCity",
    "ship_to_state": "shipToState",
    "ship_to_zip": "shipToZip",
    "subtotal": "subtotal",
    "tax_rate": "taxRate",
    "tax_amount": "taxAmount",
    "discount_value": "discountValue",
    "discount_amount": "discountAmount",
    "shipping_amount": "shippingAmount",
    "total": "total",
    "amount_paid": "amountPaid",
    "balance_due": "balanceDue",
    "notes": "notes",
    "terms": "terms",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

_OPTIONAL_FIELDS = frozenset(
    {
        "company_logo",
        "ship_to_name",
        "ship_to_address",
        "ship_to_city",
        "ship_to_state",
        "ship_to_zip",
    }
)


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: str
    date: str  # YYYY-MM-DD
    due_date: str  # YYYY-MM-DD
    created_at: str  # ISO datetime, UTC
    updated_at: str
    payment_terms: str = DEFAULT_PAYMENT_TERMS
    po_number: str = ""

    company_logo: str | None = None  # data URL, file path or http(s) URL
    company_name: str = DEFAULT_COMPANY_NAME

    bill_to_name: str = ""
    bill_to_address: str = ""
    bill_to_city: str = ""
    bill_to_state: str = ""
    bill_to_zip: str = ""

    ship_to_name: str | None = None
    ship_to_address: str | None = None
    ship_to_city: str | None = None
    ship_to_state: str | None = None
    ship_to_zip: str | None = None

    items: tuple[LineItem, ...] = field(default_factory=tuple)

    tax_rate: float = 0
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: float = 0
    shipping_amount: float = 0
    amount_paid: float = 0

    # Derived by services.totals.recompute
    subtotal: float = 0
    discount_amount: float = 0
    tax_amount: float = 0
    total: float = 0
    balance_due: float = 0

    notes: str = ""
    terms: str = DEFAULT_TERMS

    @classmethod
    def from_dict(cls, d: dict) -> Invoice:
        """Create an Invoice from a persisted (camelCase) record."""
        kwargs: dict[str, Any] = {}
        for attr, key in _FIELD_KEYS.items():
            if key in d:
                kwargs[attr] = d[key]
        return cls(
            id=d["id"],
            items=tuple(LineItem.from_dict(i) for i in d.get("items", [])),
            discount_type=DiscountType(d.get("discountType", DiscountType.PERCENTAGE)),
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase schema; unset optional fields are omitted."""
        data: dict[str, Any] = {"id": self.id}
        for attr, key in _FIELD_KEYS.items():
            value = getattr(self, attr)
            if value is None and attr in _OPTIONAL_FIELDS:
                continue
            data[key] = value
        data["items"] = [item.to_dict() for item in self.items]
        data["discountType"] = str(self.discount_type)
        return data

    @property
    def has_ship_to(self) -> bool:
        return bool(self.ship_to_name or self.ship_to_address)


def new_invoice(now: datetime | None = None) -> Invoice:
    """A fresh invoice with a generated id and the default field values."""
    now = now or datetime.now(UTC)
    today = now.date()
    stamp = now.isoformat()
    return Invoice(
        id=_new_id(),
        invoice_number=f"INV-{int(now.timestamp() * 1000)}",
        date=today.isoformat(),
        due_date=(today + timedelta(days=DUE_IN_DAYS)).isoformat(),
        created_at=stamp,
        updated_at=stamp,
        items=(new_line_item(),),
    )


def _touch(invoice: Invoice, **changes: Any) -> Invoice:
    stamp = _now_iso()
    if stamp <= invoice.updated_at:
        # Same clock tick as the previous edit; keep updatedAt strictly increasing
        time.sleep(1e-6)
        stamp = _now_iso()
    return replace(invoice, updated_at=stamp, **changes)


def update_invoice(invoice: Invoice, **changes: Any) -> Invoice:
    """Replace whole fields and advance updatedAt.

    ``id`` and ``created_at`` are fixed at creation and cannot be changed.
    Totals are not recomputed here.
    """
    for name in ("id", "created_at", "updated_at"):
        if name in changes:
            raise ValueError(f"{name} cannot be edited")
    if "items" in changes:
        changes["items"] = tuple(changes["items"])
    if "discount_type" in changes:
        changes["discount_type"] = DiscountType(changes["discount_type"])
    return _touch(invoice, **changes)


def update_item(invoice: Invoice, index: int, **changes: Any) -> Invoice:
    """Replace fields of one line item; its amount follows quantity and rate."""
    if "amount" in changes:
        raise ValueError("amount is derived from quantity and rate")
    if "id" in changes:
        raise ValueError("id cannot be edited")
    items = list(invoice.items)
    item = replace(items[index], **changes)
    if "quantity" in changes or "rate" in changes:
        item = replace(item, amount=item.quantity * item.rate)
    items[index] = item
    return _touch(invoice, items=tuple(items))


def add_item(invoice: Invoice) -> Invoice:
    return _touch(invoice, items=(*invoice.items, new_line_item()))


def remove_item(invoice: Invoice, index: int) -> Invoice:
    items = tuple(item for i, item in enumerate(invoice.items) if i != index)
    return _touch(invoice, items=items)


def payment_status(invoice: Invoice, today: date | None = None) -> str:
    """Return ``paid``, ``overdue`` or ``pending``."""
    today = today or datetime.now(UTC).date()
    if invoice.amount_paid >= invoice.total:
        return "paid"
    try:
        due = date.fromisoformat(invoice.due_date)
    except (TypeError, ValueError):
        # No usable due date: it can never be overdue
        return "pending"
    if today > due:
        return "overdue"
    return "pending"
