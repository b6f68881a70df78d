"""Paginated PDF export of a captured invoice.

The full-height capture is scaled to the page width and drawn once per page,
each time shifted up by one page height, so every page shows the next
vertical slice of the same image. Page count is ``ceil(image / page)``.
"""

from __future__ import annotations

import base64
import logging
import math
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from invoice_craft.config import (
    CAPTURE_BACKGROUND,
    CAPTURE_SCALE,
    PAGE_HEIGHT_MM,
    PAGE_WIDTH_MM,
)
from invoice_craft.models.invoice import Invoice
from invoice_craft.services.capture import InvoiceView, Raster, capture

logger = logging.getLogger(__name__)

# Absolute slack (mm) for float noise in scaled heights; an exact multiple of
# the page height must not produce an extra blank page.
_HEIGHT_EPSILON = 1e-9


@dataclass(frozen=True)
class PageGeometry:
    """Page size in millimetres."""

    width: float = PAGE_WIDTH_MM
    height: float = PAGE_HEIGHT_MM


A4 = PageGeometry()


@dataclass(frozen=True)
class ExportedDocument:
    content: bytes
    filename: str
    page_count: int

    def as_base64(self) -> str:
        """Text-safe payload for attachment workflows."""
        return base64.b64encode(self.content).decode("ascii")


def scaled_height(raster_width: float, raster_height: float, page_width: float) -> float:
    """Height of the raster once scaled to *page_width*, keeping the aspect ratio."""
    return raster_height * page_width / raster_width


def page_count(content_height: float, page_height: float) -> int:
    if content_height <= 0:
        return 1
    return max(1, math.ceil((content_height - _HEIGHT_EPSILON) / page_height))


def plan_pages(content_height: float, page_height: float) -> list[float]:
    """Vertical offset of the image top for each page (0, -h, -2h, ...).

    Pages are added while unrevealed content remains, so every unit of the
    image lands on some page and the last page may end in blank space.
    """
    offsets = [0.0]
    remaining = content_height - page_height
    while remaining > _HEIGHT_EPSILON:
        offsets.append(remaining - content_height)
        remaining -= page_height
    return offsets


def render_pdf(raster: Raster, geometry: PageGeometry = A4) -> tuple[bytes, int]:
    """Encode *raster* into a multi-page PDF. Returns (bytes, page count)."""
    img_height = scaled_height(raster.width, raster.height, geometry.width)
    offsets = plan_pages(img_height, geometry.height)

    buf = BytesIO()
    pdf = canvas.Canvas(buf, pagesize=(geometry.width * mm, geometry.height * mm))
    image = ImageReader(raster.image)
    for offset in offsets:
        # PDF origin is bottom-left; offset is measured from the page top
        y = geometry.height - offset - img_height
        pdf.drawImage(
            image,
            0,
            y * mm,
            width=geometry.width * mm,
            height=img_height * mm,
        )
        pdf.showPage()
    pdf.save()
    logger.debug("Rendered %d page(s), image height %.2f mm", len(offsets), img_height)
    return buf.getvalue(), len(offsets)


def download_filename(invoice: Invoice) -> str:
    return f"invoice-{invoice.invoice_number}.pdf"


def export_invoice(
    invoice: Invoice,
    element: InvoiceView | None,
    geometry: PageGeometry = A4,
    scale: float = CAPTURE_SCALE,
    background: str = CAPTURE_BACKGROUND,
    use_cors: bool = True,
) -> ExportedDocument:
    """Capture *element* and paginate it into a PDF named after *invoice*.

    Callers must pass a view that reflects the current state of the invoice.
    Nothing is written to disk; see :func:`save_document`.
    """
    raster = capture(element, scale=scale, background=background, use_cors=use_cors)
    content, pages = render_pdf(raster, geometry)
    return ExportedDocument(content=content, filename=download_filename(invoice), page_count=pages)


def save_document(document: ExportedDocument, directory: Path) -> Path:
    """Write *document* into *directory* under its download filename."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    out_path = directory / document.filename
    out_path.write_bytes(document.content)
    logger.info("Saved %s (%d page(s))", out_path, document.page_count)
    return out_path


def download_invoice(invoice: Invoice, element: InvoiceView | None, directory: Path) -> Path:
    """Export *invoice* and save it as ``invoice-{invoiceNumber}.pdf`` in *directory*."""
    return save_document(export_invoice(invoice, element), directory)
