from __future__ import annotations

import math
from datetime import date


def format_money(value: float) -> str:
    """Format an amount as $X,XXX.XX; rounding happens only here."""
    if math.isnan(value):
        return "$NaN"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_percent(value: float) -> str:
    """Format a percentage with up to two decimals: 10 -> '10%', 7.25 -> '7.25%'."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text}%"


def format_date(value: str) -> str:
    """Format an ISO date (YYYY-MM-DD) as MM/DD/YYYY; other text passes through."""
    try:
        d = date.fromisoformat(value)
    except ValueError:
        return value
    return d.strftime("%m/%d/%Y")
