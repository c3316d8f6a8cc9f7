from __future__ import annotations
from datetime import datetime, date, timedelta, timezone
from typing import Any, Callable, List, Optional, Tuple
import re

# ─────────────────────────────
# Time & Date helpers
# ─────────────────────────────
Clock = Callable[[], float]


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def week_bounds_for(d: date) -> Tuple[date, date]:
    """Return Monday..Sunday (inclusive) for the week containing d."""
    weekday = d.weekday()  # Monday=0
    monday = d - timedelta(days=weekday)
    sunday = monday + timedelta(days=6)
    return monday, sunday


def trailing_week_starts(today: date, weeks: int) -> List[date]:
    """Mondays of the last `weeks` ISO weeks, oldest first, ending with today's week."""
    this_monday, _ = week_bounds_for(today)
    return [this_monday - timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]


# Google Sheets/Excel date parsing
def excel_serial_to_date(n: float | int) -> date:
    # Excel/Sheets “day zero” offset
    return (datetime(1899, 12, 30) + timedelta(days=int(n))).date()


def parse_sheet_date(raw: Any) -> Optional[date]:
    """Accepts ISO string, Excel serial, date or datetime; returns date or None."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)):
        return excel_serial_to_date(raw)
    try:
        return datetime.fromisoformat(str(raw).strip()).date()
    except ValueError:
        return None


# ─────────────────────────────
# Person field helpers
# ─────────────────────────────
_DAY_MONTH = re.compile(r"^(\d{1,2})[-/](\d{1,2})$")

# days per month, February allowing the 29th since no year is stored
_MONTH_DAYS = {1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}


def normalize_day_month(raw: Any) -> Optional[str]:
    """
    Birthdays are stored as DD-MM with no year.
    Accepts "7-3", "07/03", a full date or an Excel serial; returns "07-03" or None.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, (date, datetime, int, float)):
        d = parse_sheet_date(raw)
        return f"{d.day:02d}-{d.month:02d}" if d else None
    m = _DAY_MONTH.match(str(raw).strip())
    if not m:
        return None
    day, month = int(m.group(1)), int(m.group(2))
    if month not in _MONTH_DAYS or not 1 <= day <= _MONTH_DAYS[month]:
        return None
    return f"{day:02d}-{month:02d}"


def normalize_phone(raw: Any) -> str:
    """Strip spaces, dashes, dots, parentheses and a leading '+'."""
    if raw is None:
        return ""
    s = str(raw).strip()
    # spreadsheets hand phone numbers back as floats ("241234567.0")
    if s.endswith(".0") and s[:-2].isdigit():
        s = s[:-2]
    return re.sub(r"[\s\-\.\(\)\+]", "", s)


# ─────────────────────────────
# Math / display helpers
# ─────────────────────────────
def safe_percent(numer: float, denom: float) -> int:
    """Whole-number percentage, rounding half up; 0 when denom is 0."""
    if not denom:
        return 0
    return int((numer * 100.0 / denom) + 0.5)
