from __future__ import annotations


class InvoiceCraftError(Exception):
    """Base class for every error raised by invoice_craft."""


class ValidationError(InvoiceCraftError, ValueError):
    """Malformed recipient address or missing required field."""


class NotFoundError(InvoiceCraftError, LookupError):
    """No invoice with the requested id."""

    def __init__(self, invoice_id: str) -> None:
        super().__init__(f"Invoice not found: {invoice_id}")
        self.invoice_id = invoice_id


class RenderError(InvoiceCraftError):
    """Capture or rasterization of the invoice view failed."""


class ElementNotFoundError(RenderError):
    """The visual source was absent at capture time."""


class CanvasRenderError(RenderError):
    """Rasterization was blocked, e.g. by a disallowed cross-origin logo."""


class StorageError(InvoiceCraftError):
    """Serialization or write failure in the persistence store."""


class DispatchError(InvoiceCraftError):
    """The remote email service rejected or failed the send."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BackgroundRemovalError(InvoiceCraftError):
    """The background-removal service failed; retry with another image."""
