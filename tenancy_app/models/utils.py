import calendar
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

TWO_PLACES = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def minor_to_major(amount_minor) -> Decimal:
    return to_money(Decimal(str(amount_minor)) / 100)


def major_to_minor(amount) -> int:
    return int(to_money(amount) * 100)


def lease_end_date(start_date: date, months: int = 12) -> date:
    return start_date + relativedelta(months=months)


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    return first, first + relativedelta(months=1)


def due_date_in_month(anchor: date, day: date) -> date:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=min(anchor.day, last_day))
