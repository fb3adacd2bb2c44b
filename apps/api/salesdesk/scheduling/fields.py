from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any


def read_field(item: Any, name: str) -> Any:
    """Read ``name`` from a mapping or an attribute-bearing record."""
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def to_calendar_date(value: Any, tz: tzinfo | None = None) -> date | None:
    """Truncate a date-like value to a calendar date.

    Aware datetimes are converted to ``tz`` before truncation; naive datetimes
    and plain dates are taken as already local. ISO-8601 strings are parsed.
    Anything else, including unparseable strings, yields ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return to_calendar_date(datetime.fromisoformat(text.replace("Z", "+00:00")), tz)
        except ValueError:
            pass
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    return None


def to_amount(value: Any) -> Decimal:
    """Absent or non-numeric amounts count as zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
