"""Raster capture of the invoice preview.

:class:`InvoiceView` lays the invoice out the way the on-screen preview shows
it, in CSS pixels of an A4-wide sheet; :func:`capture` paints that layout into
a Pillow image at an oversampling factor for print quality.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from pathlib import Path

import requests
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from invoice_craft.config import CAPTURE_BACKGROUND, CAPTURE_SCALE, LOGO_FETCH_TIMEOUT
from invoice_craft.models.invoice import Invoice
from invoice_craft.services.exceptions import CanvasRenderError, ElementNotFoundError
from invoice_craft.utils.formatters import format_date, format_money, format_percent

logger = logging.getLogger(__name__)

VIEW_WIDTH = 794  # A4 width at 96 CSS px per inch
PADDING = 32
LINE = 20
ROW = 36
LOGO_BOX = (80, 80)

TEXT = "#111827"
MUTED = "#6b7280"
PRIMARY = "#1d4ed8"
BORDER = "#e5e7eb"
STRIPE = "#f9fafb"
HEADER_FILL = "#f3f4f6"

# Items table columns: description, quantity (centered), rate, amount (right aligned)
_COL_DESC = PADDING + 12
_COL_QTY_CENTER = PADDING + 470
_COL_RATE_RIGHT = PADDING + 600
_COL_AMOUNT_RIGHT = VIEW_WIDTH - PADDING - 12


@dataclass(frozen=True)
class TextOp:
    x: float
    y: float
    text: str
    size: int = 14
    fill: str = TEXT
    align: str = "left"  # left | center | right; x is the anchor


@dataclass(frozen=True)
class RuleOp:
    x0: float
    x1: float
    y: float
    fill: str = BORDER


@dataclass(frozen=True)
class RectOp:
    x0: float
    y0: float
    x1: float
    y1: float
    fill: str


@dataclass(frozen=True)
class LogoOp:
    x: float
    y: float
    width: float
    height: float


@lru_cache(maxsize=32)
def _font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    return ImageFont.load_default(size=size)


def load_logo(source: str | None, use_cors: bool = True) -> Image.Image | None:
    """Decode the company logo from a data URL, local path or http(s) URL.

    Remote logos are only fetched when *use_cors* allows cross-origin images;
    otherwise, or when the image cannot be decoded, CanvasRenderError is raised.
    """
    if not source:
        return None
    try:
        if source.startswith("data:"):
            _, _, payload = source.partition(",")
            data = base64.b64decode(payload, validate=True)
        elif source.startswith(("http://", "https://")):
            if not use_cors:
                raise CanvasRenderError(f"Cross-origin logo not permitted: {source[:80]}")
            resp = requests.get(source, timeout=LOGO_FETCH_TIMEOUT)
            if not resp.ok:
                raise CanvasRenderError(f"Logo download failed ({resp.status_code}): {source[:80]}")
            data = resp.content
        else:
            data = Path(source).read_bytes()
        image = Image.open(BytesIO(data))
        image.load()
    except CanvasRenderError:
        raise
    except (binascii.Error, OSError, UnidentifiedImageError, requests.RequestException) as exc:
        raise CanvasRenderError(f"Could not load company logo: {exc}") from exc
    return image.convert("RGBA")


class InvoiceView:
    """Renderable preview of one invoice."""

    def __init__(self, invoice: Invoice) -> None:
        self.invoice = invoice

    def layout(self, has_logo: bool = False) -> tuple[list, float]:
        """Return the drawing operations and total height, in CSS pixels."""
        inv = self.invoice
        ops: list = []
        y = float(PADDING)
        right = VIEW_WIDTH - PADDING

        # Header: logo + title block on the left, company name on the right
        x = float(PADDING)
        if has_logo:
            ops.append(LogoOp(x, y, *LOGO_BOX))
            x += LOGO_BOX[0] + 16
        ops.append(TextOp(x, y, "INVOICE", size=30))
        meta_y = y + 42
        for label, value in (
            ("Invoice #:", inv.invoice_number),
            ("Date:", format_date(inv.date)),
            ("Due Date:", format_date(inv.due_date)),
            ("Payment Terms:", inv.payment_terms),
        ):
            ops.append(TextOp(x, meta_y, f"{label} {value}", size=13, fill=MUTED))
            meta_y += LINE
        ops.append(TextOp(right, y, inv.company_name, size=20, fill=PRIMARY, align="right"))
        y = max(meta_y, y + (LOGO_BOX[1] if has_logo else 0)) + 24

        # Bill to / ship to
        ops.append(RuleOp(PADDING, right, y))
        y += 24
        blocks = [
            ("Bill To:", inv.bill_to_name, inv.bill_to_address,
             inv.bill_to_city, inv.bill_to_state, inv.bill_to_zip),
        ]
        if inv.ship_to_name:
            blocks.append(
                ("Ship To:", inv.ship_to_name, inv.ship_to_address or "",
                 inv.ship_to_city or "", inv.ship_to_state or "", inv.ship_to_zip or "")
            )
        for i, (title, name, address, city, state, zip_code) in enumerate(blocks):
            bx = PADDING + i * (VIEW_WIDTH - 2 * PADDING) / 2
            ops.append(TextOp(bx, y, title, size=15))
            ops.append(TextOp(bx, y + 26, name, size=14))
            ops.append(TextOp(bx, y + 26 + LINE, address, size=13, fill=MUTED))
            ops.append(TextOp(bx, y + 26 + 2 * LINE, f"{city}, {state} {zip_code}", size=13, fill=MUTED))
        y += 26 + 3 * LINE + 24

        # Items table
        ops.append(RectOp(PADDING, y, right, y + ROW, HEADER_FILL))
        header_y = y + 10
        ops.append(TextOp(_COL_DESC, header_y, "Item", size=13))
        ops.append(TextOp(_COL_QTY_CENTER, header_y, "Quantity", size=13, align="center"))
        ops.append(TextOp(_COL_RATE_RIGHT, header_y, "Rate", size=13, align="right"))
        ops.append(TextOp(_COL_AMOUNT_RIGHT, header_y, "Amount", size=13, align="right"))
        y += ROW
        for index, item in enumerate(inv.items):
            if index % 2 == 1:
                ops.append(RectOp(PADDING, y, right, y + ROW, STRIPE))
            row_y = y + 10
            ops.append(TextOp(_COL_DESC, row_y, item.description, size=13))
            ops.append(TextOp(_COL_QTY_CENTER, row_y, f"{item.quantity:g}", size=13, align="center"))
            ops.append(TextOp(_COL_RATE_RIGHT, row_y, format_money(item.rate), size=13, align="right"))
            ops.append(TextOp(_COL_AMOUNT_RIGHT, row_y, format_money(item.amount), size=13, align="right"))
            y += ROW
            ops.append(RuleOp(PADDING, right, y))
        y += 24

        # Totals, right column
        label_x = right - 260
        lines: list[tuple[str, str, int]] = [("Subtotal:", format_money(inv.subtotal), 14)]
        if inv.discount_value > 0:
            shown = (
                format_percent(inv.discount_value)
                if inv.discount_type == "percentage"
                else format_money(inv.discount_value)
            )
            lines.append((f"Discount ({shown}):", f"-{format_money(inv.discount_amount)}", 14))
        if inv.tax_rate > 0:
            lines.append((f"Tax ({format_percent(inv.tax_rate)}):", format_money(inv.tax_amount), 14))
        if inv.shipping_amount > 0:
            lines.append(("Shipping:", format_money(inv.shipping_amount), 14))
        for label, value, size in lines:
            ops.append(TextOp(label_x, y, label, size=size))
            ops.append(TextOp(right, y, value, size=size, align="right"))
            y += LINE + 4
        ops.append(RuleOp(label_x, right, y + 4))
        y += 14
        ops.append(TextOp(label_x, y, "Total:", size=18))
        ops.append(TextOp(right, y, format_money(inv.total), size=18, align="right"))
        y += 30
        if inv.amount_paid > 0:
            ops.append(TextOp(label_x, y, "Amount Paid:", size=14))
            ops.append(TextOp(right, y, format_money(inv.amount_paid), size=14, align="right"))
            y += LINE + 4
            ops.append(TextOp(label_x, y, "Balance Due:", size=16))
            ops.append(TextOp(right, y, format_money(inv.balance_due), size=16, align="right"))
            y += LINE + 8

        # Notes and terms
        for title, body in (("Notes:", inv.notes), ("Terms:", inv.terms)):
            if not body:
                continue
            y += 16
            ops.append(TextOp(PADDING, y, title, size=15))
            y += 24
            for paragraph in body.splitlines() or [""]:
                ops.append(TextOp(PADDING, y, paragraph, size=13, fill=MUTED))
                y += LINE

        return ops, y + PADDING


@dataclass
class Raster:
    """A pixel capture of the invoice view."""

    image: Image.Image
    scale: float

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def to_png(self) -> bytes:
        buf = BytesIO()
        self.image.save(buf, format="PNG")
        return buf.getvalue()


def _paint(ops: list, canvas: Image.Image, logo: Image.Image | None, scale: float) -> None:
    draw = ImageDraw.Draw(canvas)
    for op in ops:
        if isinstance(op, RectOp):
            draw.rectangle(
                (op.x0 * scale, op.y0 * scale, op.x1 * scale, op.y1 * scale), fill=op.fill
            )
        elif isinstance(op, RuleOp):
            draw.line(
                (op.x0 * scale, op.y * scale, op.x1 * scale, op.y * scale),
                fill=op.fill,
                width=max(1, round(scale)),
            )
        elif isinstance(op, LogoOp) and logo is not None:
            fitted = logo.copy()
            fitted.thumbnail((round(op.width * scale), round(op.height * scale)))
            canvas.paste(fitted, (round(op.x * scale), round(op.y * scale)), fitted)
        elif isinstance(op, TextOp):
            font = _font(max(1, round(op.size * scale)))
            x = op.x * scale
            if op.align != "left":
                width = draw.textlength(op.text, font=font)
                x -= width if op.align == "right" else width / 2
            draw.text((x, op.y * scale), op.text, font=font, fill=op.fill)


def capture(
    element: InvoiceView | None,
    scale: float = CAPTURE_SCALE,
    background: str = CAPTURE_BACKGROUND,
    use_cors: bool = True,
) -> Raster:
    """Rasterize *element* at *scale* over an opaque *background*.

    Raises ElementNotFoundError when there is no element to capture and
    CanvasRenderError when the logo is blocked or painting fails.
    """
    if element is None:
        raise ElementNotFoundError("Invoice preview element not found")

    logo = load_logo(element.invoice.company_logo, use_cors=use_cors)
    ops, height = element.layout(has_logo=logo is not None)
    size = (round(VIEW_WIDTH * scale), round(height * scale))
    try:
        canvas = Image.new("RGB", size, background)
        _paint(ops, canvas, logo, scale)
    except (OSError, ValueError) as exc:
        raise CanvasRenderError(f"Failed to rasterize invoice: {exc}") from exc
    logger.debug("Captured invoice %s at %sx: %dx%d px", element.invoice.id, scale, *size)
    return Raster(image=canvas, scale=scale)
