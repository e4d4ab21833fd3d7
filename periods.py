from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    start: date
    end: date


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def month_period(year: int, month: int) -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    first = date(year, month, 1)
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return Period(first, next_month - date.resolution)


def month_period_for(target: date) -> Period:
    return month_period(target.year, target.month)


def resolve_month(
    year: Optional[int], month: Optional[int], *, today: Optional[date] = None
) -> Period:
    today = today or local_today()
    return month_period(year or today.year, month or today.month)
