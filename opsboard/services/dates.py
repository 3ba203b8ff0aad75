"""
Date helpers shared by the complaints, chat and P&L pipelines.

Timestamps arrive in several shapes ("2026-01-29 21:00:35.000", ISO 8601 with
or without offset, bare "YYYY-MM-DD"). They are parsed into naive datetimes;
offset-aware values are converted to UTC first so every comparison happens on
one clock.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

_FALLBACK_FORMATS = (
    '%Y-%m-%d %H:%M:%S.%f',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%d',
    '%Y/%m/%d %H:%M:%S',
    '%Y/%m/%d',
)

DateLike = Union[str, datetime, None]


def is_iso_date(value: Optional[str]) -> bool:
    """True when ``value`` is ``YYYY-MM-DD`` and names a real calendar day."""
    if not value or ISO_DATE_PATTERN.match(value) is None:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_timestamp(value: DateLike) -> Optional[datetime]:
    """
    Parse a timestamp into a naive datetime.

    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
            for fmt in _FALLBACK_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_iso(value: datetime) -> str:
    return value.isoformat(timespec='seconds')


def month_key(value: datetime) -> str:
    return value.strftime('%Y-%m')


def add_calendar_months(value: datetime, months: int) -> datetime:
    """
    Move ``value`` by whole calendar months, keeping day-of-month and time.

    A day that does not exist in the target month rolls forward into the
    next month (Jan 31 + 1 month = Mar 3 in a non-leap year).
    """
    total = value.month - 1 + months
    year = value.year + total // 12
    month = total % 12 + 1
    first_of_month = value.replace(year=year, month=month, day=1)
    return first_of_month + timedelta(days=value.day - 1)


def is_within_three_months(first: DateLike, second: DateLike) -> bool:
    """
    Whether two timestamps fall inside one 3-calendar-month window.

    The month difference is ``|Δyears * 12 + Δmonths|``. Below 3 the dates
    are inside the window; above 3 they are not. At exactly 3 the later date
    must be strictly before the earlier date plus 3 calendar months, so
    2026-01-15 and 2026-04-15 are *not* in the same window while
    2026-01-15 and 2026-04-14 are.

    Unparseable input is never within the window.
    """
    d1 = parse_timestamp(first)
    d2 = parse_timestamp(second)
    if d1 is None or d2 is None:
        return False

    months_diff = abs((d2.year - d1.year) * 12 + (d2.month - d1.month))
    if months_diff < 3:
        return True
    if months_diff > 3:
        return False

    earlier, later = (d1, d2) if d1 <= d2 else (d2, d1)
    return later < add_calendar_months(earlier, 3)


def shift_day(day: str, days: int) -> str:
    """Shift an ISO ``YYYY-MM-DD`` string by a number of days."""
    return (date.fromisoformat(day) + timedelta(days=days)).isoformat()


def months_spanned(start_day: str, end_day: str) -> int:
    """Inclusive count of calendar months touched by a date range."""
    start = date.fromisoformat(start_day[:10])
    end = date.fromisoformat(end_day[:10])
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
