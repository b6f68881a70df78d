from __future__ import annotations

import base64
from io import BytesIO

import pytest
from PIL import Image

from invoice_craft.models.invoice import Invoice, LineItem
from invoice_craft.utils.store import InvoiceStore, MemoryBackend


def _invoice(invoice_id: str = "a", **overrides) -> Invoice:
    fields = {
        "id": invoice_id,
        "invoice_number": f"INV-{invoice_id}",
        "date": "2026-10-01",
        "due_date": "2026-10-31",
        "created_at": "2026-10-01T10:00:00+00:00",
        "updated_at": "2026-10-01T10:00:00+00:00",
        "company_name": "Acme",
        "bill_to_name": "Globex",
    }
    fields.update(overrides)
    return Invoice(**fields)


# --- Invoice fixtures ---


@pytest.fixture
def make_invoice():
    """Factory: make_invoice("id", field=value, ...) -> Invoice."""
    return _invoice


@pytest.fixture
def item() -> LineItem:
    return LineItem(id="item-1", description="Consulting", quantity=2, rate=50, amount=100)


@pytest.fixture
def sample_invoice(item: LineItem) -> Invoice:
    return _invoice(items=(item,), tax_rate=10, shipping_amount=5)


# --- Logo fixtures ---


@pytest.fixture
def logo_png() -> bytes:
    buf = BytesIO()
    Image.new("RGBA", (40, 20), "red").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def logo_data_url(logo_png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(logo_png).decode("ascii")


# --- Store fixtures ---


@pytest.fixture
def memory_store():
    store = InvoiceStore(MemoryBackend())
    store.open()
    yield store
    store.close()
