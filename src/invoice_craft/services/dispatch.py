"""Email dispatch of an invoice.

Two modes: a remote send through the EmailJS REST API with the PDF attached
as base64, or a handoff to the local mail client through a ``mailto:`` link
(no attachment). Without a usable remote configuration the remote path
degrades to saving the PDF locally and still reports success.
"""

from __future__ import annotations

import logging
import time
import webbrowser
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import requests
from requests import post

from invoice_craft.config import (
    DISPATCH_TIMEOUT,
    EMAILJS_SEND_URL,
    DispatchConfig,
    load_dispatch_config,
)
from invoice_craft.models.invoice import Invoice
from invoice_craft.services.capture import InvoiceView
from invoice_craft.services.exceptions import DispatchError
from invoice_craft.services.http_retry import DISPATCH_SEND, RetryableHTTPError, retry_call
from invoice_craft.services.pdf_export import ExportedDocument, export_invoice, save_document
from invoice_craft.utils.formatters import format_date, format_money
from invoice_craft.utils.validators import require_text, validate_recipients

logger = logging.getLogger(__name__)

FALLBACK_DELAY = 2.0

Exporter = Callable[[Invoice, InvoiceView | None], ExportedDocument]


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    simulated: bool = False
    recipients: tuple[str, ...] = ()
    saved_to: Path | None = None


def default_subject(invoice: Invoice) -> str:
    return f"Invoice {invoice.invoice_number} from {invoice.company_name}"


def default_message(invoice: Invoice) -> str:
    return (
        f"Dear {invoice.bill_to_name},\n\n"
        f"Please find attached your invoice {invoice.invoice_number} "
        f"for the amount of {format_money(invoice.total)}.\n\n"
        f"Payment is due by {format_date(invoice.due_date)}.\n\n"
        "Thank you for your business!\n\n"
        f"Best regards,\n{invoice.company_name}"
    )


def build_template_params(
    invoice: Invoice,
    recipients: Sequence[str],
    subject: str,
    message: str,
    document: ExportedDocument,
) -> dict[str, str]:
    return {
        "to_email": ", ".join(recipients),
        "subject": subject,
        "message": message,
        "invoice_number": invoice.invoice_number,
        "invoice_amount": f"{invoice.total:.2f}",
        "company_name": invoice.company_name,
        "client_name": invoice.bill_to_name,
        "due_date": format_date(invoice.due_date),
        "pdf_attachment": document.as_base64(),
        "pdf_filename": document.filename,
    }


def _post_email(config: DispatchConfig, params: dict[str, str]) -> None:
    payload = {
        "service_id": config.service_id,
        "template_id": config.template_id,
        "user_id": config.public_key,
        "template_params": params,
    }

    def _do_post():
        resp = post(EMAILJS_SEND_URL, json=payload, timeout=DISPATCH_TIMEOUT)
        if resp.status_code in DISPATCH_SEND.retryable_status_codes:
            raise RetryableHTTPError(f"Email service busy ({resp.status_code})")
        return resp

    try:
        resp = retry_call(_do_post, DISPATCH_SEND)
    except requests.RequestException as exc:
        status = exc.response.status_code if exc.response is not None else None
        raise DispatchError(f"Failed to send email: {exc}", status_code=status) from exc

    if not resp.ok:
        body = resp.text[:500] if resp.text else ""
        raise DispatchError(
            f"Email service error ({resp.status_code}): {body}", status_code=resp.status_code
        )


def send_invoice_email(
    invoice: Invoice,
    recipients: Sequence[str],
    subject: str,
    message: str,
    config: DispatchConfig | None = None,
    *,
    element: InvoiceView | None = None,
    exporter: Exporter = export_invoice,
    download_dir: Path | None = None,
    delay: float = FALLBACK_DELAY,
    sleep_func: Callable[[float], object] = time.sleep,
) -> DispatchResult:
    """Export *invoice* and email it to *recipients*.

    Raises ValidationError for bad recipients or a blank subject, RenderError
    if the export fails and DispatchError if the remote service fails.
    """
    to = validate_recipients(recipients)
    require_text(subject, "subject")
    config = config or load_dispatch_config()
    if element is None:
        element = InvoiceView(invoice)

    document = exporter(invoice, element)

    if not config.is_configured:
        logger.warning(
            "Email service not configured; saving %s locally instead of sending",
            document.filename,
        )
        saved_to = save_document(document, download_dir or Path.cwd())
        sleep_func(delay)
        return DispatchResult(ok=True, simulated=True, recipients=tuple(to), saved_to=saved_to)

    params = build_template_params(invoice, to, subject, message, document)
    _post_email(config, params)
    logger.info("Invoice %s sent to %d recipient(s)", invoice.invoice_number, len(to))
    return DispatchResult(ok=True, recipients=tuple(to))


def compose_body(invoice: Invoice, message: str) -> str:
    return (
        f"{message}\n\n"
        "Invoice Details:\n"
        f"- Invoice #: {invoice.invoice_number}\n"
        f"- Amount: {format_money(invoice.total)}\n"
        f"- Due Date: {format_date(invoice.due_date)}\n\n"
        "Please note: PDF attachment needs to be added manually."
    )


def build_mailto(invoice: Invoice, recipients: Sequence[str], subject: str, message: str) -> str:
    """``mailto:`` link pre-filled with recipients, subject and an invoice summary."""
    to = validate_recipients(recipients)
    body = compose_body(invoice, message)
    return f"mailto:{','.join(to)}?subject={quote(subject, safe='')}&body={quote(body, safe='')}"


def open_email_client(
    invoice: Invoice,
    recipients: Sequence[str],
    subject: str,
    message: str,
    opener: Callable[[str], object] = webbrowser.open,
) -> str:
    """Hand the message to the local mail client. Returns the link that was opened."""
    link = build_mailto(invoice, recipients, subject, message)
    opener(link)
    return link
