from __future__ import annotations

import re
from collections.abc import Iterable

from invoice_craft.services.exceptions import ValidationError

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(value: str) -> str:
    """Validate a recipient address (something@domain.tld, no whitespace).

    Returns the stripped address. Raises ValidationError if malformed.
    """
    address = value.strip()
    if not _EMAIL_RE.fullmatch(address):
        raise ValidationError(f"Invalid email address: '{value}'")
    return address


def validate_recipients(recipients: Iterable[str]) -> list[str]:
    """Validate a recipient list, dropping duplicates while keeping order.

    Raises ValidationError when empty or when any address is malformed.
    """
    result: list[str] = []
    for raw in recipients:
        address = validate_email(raw)
        if address not in result:
            result.append(address)
    if not result:
        raise ValidationError("Please add at least one recipient email")
    return result


def require_text(value: str | None, field_name: str) -> str:
    """Raise ValidationError if a required text field is blank."""
    if value is None or not value.strip():
        raise ValidationError(f"Missing required field: {field_name}")
    return value
