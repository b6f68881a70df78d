from __future__ import annotations

import base64
import logging
from io import BytesIO
from typing import Protocol

import requests

from invoice_craft.config import BACKGROUND_REMOVAL_TIMEOUT, REMOVE_BG_URL
from invoice_craft.models.invoice import Invoice, update_invoice
from invoice_craft.services.capture import load_logo
from invoice_craft.services.exceptions import BackgroundRemovalError, CanvasRenderError

logger = logging.getLogger(__name__)


class BackgroundRemover(Protocol):
    def remove_background(self, image: bytes) -> bytes:
        """Return PNG bytes of *image* with its background made transparent."""
        ...


class RemoveBgClient:
    """remove.bg HTTP API."""

    def __init__(self, api_key: str, url: str = REMOVE_BG_URL) -> None:
        self.api_key = api_key
        self.url = url

    def remove_background(self, image: bytes) -> bytes:
        try:
            resp = requests.post(
                self.url,
                headers={"X-Api-Key": self.api_key},
                files={"image_file": ("logo.png", image)},
                data={"size": "auto", "format": "png"},
                timeout=BACKGROUND_REMOVAL_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise BackgroundRemovalError(f"Background removal request failed: {exc}") from exc
        if not resp.ok:
            body = resp.text[:200] if resp.text else ""
            raise BackgroundRemovalError(
                f"Background removal failed ({resp.status_code}): {body}"
            )
        return resp.content


def _to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def apply_logo_without_background(invoice: Invoice, remover: BackgroundRemover) -> Invoice:
    """Replace the company logo with a background-free PNG data URL.

    Raises BackgroundRemovalError when there is no usable logo or the
    service fails; the invoice is left unchanged and the caller may retry
    with a different image.
    """
    try:
        logo = load_logo(invoice.company_logo)
    except CanvasRenderError as exc:
        raise BackgroundRemovalError(str(exc)) from exc
    if logo is None:
        raise BackgroundRemovalError("Invoice has no company logo")

    buf = BytesIO()
    logo.save(buf, format="PNG")
    processed = remover.remove_background(buf.getvalue())
    logger.info("Removed logo background for invoice %s", invoice.id)
    return update_invoice(invoice, company_logo=_to_data_url(processed))
