from __future__ import annotations

import argparse
import base64
import getpass
import logging
import mimetypes
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

from invoice_craft.models.invoice import (
    Invoice,
    LineItem,
    new_invoice,
    new_line_item,
    payment_status,
    update_invoice,
)
from invoice_craft.services.exceptions import InvoiceCraftError, ValidationError
from invoice_craft.services.totals import recompute, summarize
from invoice_craft.utils.formatters import format_date, format_money, format_percent
from invoice_craft.utils.store import InvoiceStore, open_store

DISPATCH_EXAMPLE = """\
# Remote email dispatch (EmailJS). Leave blank to save PDFs locally instead.
service_id: your_service_id
template_id: your_template_id
# public_key may also come from EMAIL_PUBLIC_KEY or the OS keyring
public_key: your_public_key
"""


def _setup_public_key() -> bool:
    """Ask for the email service public key and store it in the OS keyring."""
    from invoice_craft.config import _set_keyring_public_key

    public_key = getpass.getpass("Email service public key (empty to skip): ").strip()
    if not public_key:
        print("  Public key not stored.")
        return False
    if _set_keyring_public_key(public_key):
        print("  Public key stored in the system keychain.")
        return True
    print("  ERROR: keychain unavailable. Set EMAIL_PUBLIC_KEY in your .env instead.")
    return False


def _init_config() -> None:
    """Create config/data directories and the dispatch config example."""
    from invoice_craft.config import get_config_dir, get_data_dir

    config_dir = get_config_dir()
    data_dir = get_data_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)

    dest = config_dir / "dispatch.yaml.example"
    if dest.exists():
        print(f"  already exists: {dest}")
    else:
        dest.write_text(DISPATCH_EXAMPLE)
        print(f"  created: {dest}")

    print()
    print(f"Config: {config_dir}")
    print(f"Data:   {data_dir}")
    print()
    try:
        answer = input("Store the email service public key now? [y/N]: ").strip().lower()
        if answer in ("y", "yes"):
            _setup_public_key()
    except (EOFError, KeyboardInterrupt):
        print()


def _parse_item(spec: str) -> LineItem:
    """Parse DESCRIPTION:QUANTITY:RATE into a line item."""
    parts = spec.rsplit(":", 2)
    if len(parts) != 3:
        raise ValidationError(f"Item must look like DESCRIPTION:QUANTITY:RATE, got '{spec}'")
    description, quantity, rate = parts
    try:
        qty, unit = float(quantity), float(rate)
    except ValueError:
        raise ValidationError(f"Invalid quantity or rate in item '{spec}'") from None
    return replace(
        new_line_item(), description=description, quantity=qty, rate=unit, amount=qty * unit
    )


def _parse_due_date(value: str) -> str:
    """Validate a YYYY-MM-DD due date."""
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise ValidationError(f"Invalid due date '{value}', expected YYYY-MM-DD") from None


def _print_invoice(inv: Invoice) -> None:
    print(f"Invoice {inv.invoice_number}  ({inv.id})")
    print(f"  From:     {inv.company_name}")
    print(f"  Bill to:  {inv.bill_to_name}")
    print(f"  Date:     {format_date(inv.date)}   Due: {format_date(inv.due_date)}")
    for item in inv.items:
        print(
            f"  - {item.description or '(no description)'}: "
            f"{item.quantity:g} x {format_money(item.rate)} = {format_money(item.amount)}"
        )
    print(f"  Subtotal: {format_money(inv.subtotal)}")
    if inv.discount_value > 0:
        print(f"  Discount: -{format_money(inv.discount_amount)}")
    if inv.tax_rate > 0:
        print(f"  Tax ({format_percent(inv.tax_rate)}): {format_money(inv.tax_amount)}")
    if inv.shipping_amount > 0:
        print(f"  Shipping: {format_money(inv.shipping_amount)}")
    print(f"  Total:    {format_money(inv.total)}")
    print(f"  Balance:  {format_money(inv.balance_due)}")


def _cmd_list(store: InvoiceStore, args: argparse.Namespace) -> None:
    result = store.load()
    if result.corrupt:
        print(f"WARNING: saved invoices were unreadable and were moved to {result.backup}")
    invoices = sorted(result.invoices, key=lambda inv: inv.created_at, reverse=True)
    for inv in invoices:
        print(
            f"{inv.id[:8]}  {inv.invoice_number:<18} {inv.bill_to_name[:24]:<24} "
            f"{format_money(inv.total):>12}  {payment_status(inv)}"
        )
    summary = summarize(invoices)
    print(
        f"{summary.count} invoice(s), {format_money(summary.total_amount)} total, "
        f"{summary.this_month} this month"
    )


def _cmd_new(store: InvoiceStore, args: argparse.Namespace) -> None:
    invoice = new_invoice()
    changes: dict = {
        "company_name": args.company,
        "bill_to_name": args.bill_to,
        "tax_rate": args.tax,
        "discount_type": args.discount_type,
        "discount_value": args.discount,
        "shipping_amount": args.shipping,
        "amount_paid": args.paid,
        "notes": args.notes,
        "due_date": _parse_due_date(args.due_date) if args.due_date else None,
    }
    if args.item:
        changes["items"] = [_parse_item(spec) for spec in args.item]
    invoice = update_invoice(invoice, **{k: v for k, v in changes.items() if v is not None})
    invoice = recompute(invoice)
    store.upsert(invoice)
    _print_invoice(invoice)


def _cmd_show(store: InvoiceStore, args: argparse.Namespace) -> None:
    _print_invoice(store.require(args.id))


def _cmd_export(store: InvoiceStore, args: argparse.Namespace) -> None:
    from invoice_craft.services.capture import InvoiceView
    from invoice_craft.services.pdf_export import download_invoice

    invoice = store.require(args.id)
    path = download_invoice(invoice, InvoiceView(invoice), Path(args.out))
    print(f"Saved {path}")


def _cmd_delete(store: InvoiceStore, args: argparse.Namespace) -> None:
    if store.delete(args.id):
        print(f"Deleted {args.id}")
    else:
        print(f"No saved invoice {args.id}; nothing deleted")


def _cmd_send(store: InvoiceStore, args: argparse.Namespace) -> None:
    from invoice_craft.services import dispatch

    invoice = store.require(args.id)
    subject = args.subject or dispatch.default_subject(invoice)
    message = args.message or dispatch.default_message(invoice)
    if args.client:
        dispatch.open_email_client(invoice, args.to, subject, message)
        print("Email client opened. Please add the PDF attachment manually.")
        return
    result = dispatch.send_invoice_email(
        invoice, args.to, subject, message, download_dir=Path(args.out)
    )
    if result.simulated:
        print(f"Email service not configured. PDF saved to {result.saved_to}")
    else:
        print(f"Invoice sent successfully to {len(result.recipients)} recipient(s)!")


def _cmd_logo(store: InvoiceStore, args: argparse.Namespace) -> None:
    invoice = store.require(args.id)
    path = Path(args.image)
    mime = mimetypes.guess_type(path.name)[0] or "image/png"
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ValidationError(f"Cannot read logo: {exc}") from exc
    invoice = update_invoice(
        invoice, company_logo=f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
    )
    if args.remove_background:
        from invoice_craft.config import get_remove_bg_api_key
        from invoice_craft.services.background_removal import (
            RemoveBgClient,
            apply_logo_without_background,
        )

        try:
            api_key = get_remove_bg_api_key()
        except KeyError:
            raise ValidationError("Missing required field: REMOVE_BG_API_KEY") from None
        invoice = apply_logo_without_background(invoice, RemoveBgClient(api_key))
    store.upsert(invoice)
    print(f"Logo updated for {invoice.invoice_number}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="invoice-craft")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create config and data directories")
    sub.add_parser("list", help="list saved invoices")

    new = sub.add_parser("new", help="create and save an invoice")
    new.add_argument("--company")
    new.add_argument("--bill-to")
    new.add_argument("--item", action="append", metavar="DESC:QTY:RATE")
    new.add_argument("--tax", type=float)
    new.add_argument("--discount", type=float)
    new.add_argument("--discount-type", choices=["fixed", "percentage"])
    new.add_argument("--shipping", type=float)
    new.add_argument("--paid", type=float)
    new.add_argument("--notes")
    new.add_argument("--due-date")

    for name, help_text in (("show", "print an invoice"), ("delete", "delete an invoice")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("id")

    export = sub.add_parser("export", help="export an invoice as PDF")
    export.add_argument("id")
    export.add_argument("--out", default=".")

    send = sub.add_parser("send", help="email an invoice")
    send.add_argument("id")
    send.add_argument("--to", action="append", required=True)
    send.add_argument("--subject")
    send.add_argument("--message")
    send.add_argument("--client", action="store_true", help="open the local mail client")
    send.add_argument("--out", default=".", help="where to save the PDF if not sent")

    logo = sub.add_parser("logo", help="set the company logo from an image file")
    logo.add_argument("id")
    logo.add_argument("image")
    logo.add_argument("--remove-background", action="store_true")
    return parser


_COMMANDS = {
    "list": _cmd_list,
    "new": _cmd_new,
    "show": _cmd_show,
    "export": _cmd_export,
    "delete": _cmd_delete,
    "send": _cmd_send,
    "logo": _cmd_logo,
}


def main() -> None:
    """Entry point for the invoice-craft CLI."""
    args = _build_parser().parse_args(sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init":
        _init_config()
        return

    try:
        with open_store() as store:
            _COMMANDS[args.command](store, args)
    except InvoiceCraftError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
