from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from salesdesk.core.config import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def business_timezone() -> tzinfo:
    """Timezone whose midnight separates "today" from "overdue"."""
    name = get_settings().business_timezone
    if name == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def business_date(now: datetime) -> date:
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(business_timezone()).date()


def get_now() -> datetime:
    return utcnow()
