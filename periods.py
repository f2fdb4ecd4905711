import re
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

_INVOICE_MONTH_RE = re.compile(r"^(\d{2})/(\d{4})$")


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    return date(year, month, days_in_month(year, month))


def shift_month(year: int, month: int, count: int) -> tuple[int, int]:
    total_months = month - 1 + count
    return year + total_months // 12, total_months % 12 + 1


def add_months(base: date, count: int, *, desired_day: Optional[int] = None) -> date:
    """Move ``base`` by ``count`` calendar months, snapping to the month end.

    ``desired_day`` defaults to ``base.day``; 31 January plus one month is the
    last day of February.
    """
    year, month = shift_month(base.year, base.month, count)
    day = desired_day or base.day
    return date(year, month, min(day, days_in_month(year, month)))


def format_invoice_month(year: int, month: int) -> str:
    return f"{month:02d}/{year}"


def parse_invoice_month(value: str) -> tuple[int, int]:
    """Return ``(year, month)`` for an ``MM/YYYY`` bucket label."""
    match = _INVOICE_MONTH_RE.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid invoice month '{value}', expected MM/YYYY")
    month = int(match.group(1))
    year = int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid invoice month '{value}', expected MM/YYYY")
    return year, month


def shift_invoice_month(value: str, count: int) -> str:
    year, month = parse_invoice_month(value)
    return format_invoice_month(*shift_month(year, month, count))


def invoice_month_key(value: str) -> int:
    year, month = parse_invoice_month(value)
    return year * 100 + month


def invoice_month_for(day: date) -> str:
    return format_invoice_month(day.year, day.month)
