from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from schemas import DateRangeIn

ROLLING_WINDOWS = {"last_30_days": 30, "last_90_days": 90}


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def as_range(self) -> DateRangeIn:
        return DateRangeIn(
            start_date=datetime.combine(self.start, time.min),
            end_date=datetime.combine(self.end, time.max),
        )


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "current_year":
        return Period(
            "current_year", date(today.year, 1, 1), date(today.year, 12, 31)
        )
    if period in ROLLING_WINDOWS:
        days = ROLLING_WINDOWS[period]
        return Period(period, today - timedelta(days=days), today)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period and period != "current_month":
        raise ValueError(f"Unknown period: {period}")

    first = today.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    end_this = next_month - date.resolution
    return Period("current_month", first, end_this)
