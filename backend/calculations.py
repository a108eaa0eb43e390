import calendar
import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional
from zoneinfo import ZoneInfo

from .config import settings
from .models import STATUS_PENDING, STATUS_ON_SITE, STATUS_COMPLETED

ACTIVE_WINDOW = timedelta(minutes=settings.ACTIVE_WINDOW_MINUTES)
CLOCK_OUT_WINDOW = timedelta(minutes=settings.CLOCK_OUT_WINDOW_MINUTES)

# Leading numeric prefix, same leniency as a spreadsheet cell: "7.5h" -> 7.5
_NUMBER_PREFIX = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")
_MONEY_NOISE = re.compile(r"[£$€,\s]")


def local_now() -> datetime:
    """Wall-clock time in the configured zone, as a naive datetime."""
    return datetime.now(ZoneInfo(settings.TZ)).replace(tzinfo=None)


# --- Lenient parsing ---

def parse_number(value, default: Optional[float] = 0.0) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    match = _NUMBER_PREFIX.match(str(value))
    if not match:
        return default
    number = float(match.group(1))
    return number if math.isfinite(number) else default


def parse_money(value, default: Optional[float] = 0.0) -> Optional[float]:
    """parse_number after dropping currency symbols and thousands separators."""
    if isinstance(value, str):
        value = _MONEY_NOISE.sub("", value.replace(settings.CURRENCY_SYMBOL, ""))
    return parse_number(value, default)


def parse_time(value) -> Optional[time]:
    if isinstance(value, time):
        return value
    if not value:
        return None
    try:
        parts = [int(p) for p in str(value).strip().split(":")]
        return time(parts[0], parts[1])
    except (ValueError, IndexError):
        return None


def parse_iso_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def round_earnings(hours, rate) -> float:
    try:
        total = Decimal(str(hours)) * Decimal(str(rate))
        return float(total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0.0


# --- Time windows ---

def compute_end_time(shift_date, start_time, hours) -> str:
    """
    HH:MM at which a shift starting at start_time on shift_date ends.
    Returns "" while any input is missing or unreadable. A shift running
    past midnight shows only the wrapped time of day.
    """
    if not shift_date or not start_time or not hours:
        return ""
    day = parse_iso_date(shift_date)
    start = parse_time(start_time)
    duration = parse_number(hours, default=None)
    if day is None or start is None or duration is None:
        return ""
    end = _add_hours(datetime.combine(day, start), duration)
    return end.strftime("%H:%M") if end is not None else ""


def _add_hours(moment: datetime, hours: float) -> Optional[datetime]:
    """moment + hours, or None when the result falls outside the calendar."""
    try:
        return moment + timedelta(hours=hours)
    except (OverflowError, ValueError):
        return None


def shift_start(shift: dict) -> Optional[datetime]:
    day = parse_iso_date(shift.get("date"))
    start = parse_time(shift.get("start_time"))
    if day is None or start is None:
        return None
    return datetime.combine(day, start)


def shift_end(shift: dict) -> Optional[datetime]:
    """
    The stored end_time on the shift's day, moved to the next day when it
    is not after the start. Start + hours only when end_time is unreadable.
    """
    day = parse_iso_date(shift.get("date"))
    start = shift_start(shift)
    end = parse_time(shift.get("end_time"))
    if day is not None and end is not None:
        end_at = datetime.combine(day, end)
        if start is not None and end_at <= start:
            end_at = _add_hours(end_at, 24)
        return end_at

    hours = parse_number(shift.get("hours"))
    if start is not None and hours > 0:
        return _add_hours(start, hours)
    return None


def is_shift_active(shift: dict, now: datetime) -> bool:
    """
    Today's shift, not completed, and either within an hour of its start
    or already clocked in.
    """
    if shift.get("date") != now.date().isoformat():
        return False
    status = shift.get("status")
    if status == STATUS_COMPLETED:
        return False
    if status == STATUS_ON_SITE:
        return True
    start = shift_start(shift)
    return start is not None and abs(now - start) <= ACTIVE_WINDOW


def find_active_shift(shifts: list[dict], now: datetime) -> Optional[dict]:
    return next((s for s in shifts if is_shift_active(s, now)), None)


def can_clock_out(shift: dict, now: datetime) -> bool:
    if shift.get("status") != STATUS_ON_SITE:
        return False
    end = shift_end(shift)
    return end is not None and end - now <= CLOCK_OUT_WINDOW


# --- Status derivation ---

def derive_import_status(iso_date: str, today: date, csv_status: Optional[str]) -> str:
    """
    Today -> on site, future -> pending, past -> the file's own status
    (lower-cased) or completed.
    """
    if iso_date == today.isoformat():
        return STATUS_ON_SITE
    shift_day = parse_iso_date(iso_date)
    if shift_day is not None and shift_day > today:
        return STATUS_PENDING
    return (csv_status or "").strip().lower() or STATUS_COMPLETED


# --- Aggregation ---

def month_bounds(month: str) -> tuple[str, str]:
    """("YYYY-MM-01", "YYYY-MM-<last>") for a YYYY-MM string; ValueError if malformed."""
    year, mon = (int(p) for p in month.split("-"))
    num_days = calendar.monthrange(year, mon)[1]
    return date(year, mon, 1).isoformat(), date(year, mon, num_days).isoformat()


def summarize(shifts: list[dict]) -> dict:
    hours = sum(parse_number(s.get("hours")) for s in shifts)
    earnings = sum(parse_number(s.get("total_earnings")) for s in shifts)
    return {"hours": round(hours, 2), "count": len(shifts), "earnings": round(earnings, 2)}


def filter_shifts(shifts, employer_names: dict, site_names: dict,
                  status: str = "all", employer: str = "", site: str = "") -> list[dict]:
    status = (status or "all").lower()
    employer = (employer or "").lower()
    site = (site or "").lower()

    def keep(s):
        if status != "all" and (s.get("status") or "").lower() != status:
            return False
        if employer and employer not in employer_names.get(s.get("employer_id"), "").lower():
            return False
        if site and site not in site_names.get(s.get("site_id"), "").lower():
            return False
        return True

    return [s for s in shifts if keep(s)]


def earnings_by_period(shifts: list[dict], view: str) -> list[dict]:
    """Earnings per week (Monday start), month or year, oldest first."""
    buckets = {}
    for s in shifts:
        day = parse_iso_date(s.get("date"))
        if day is None:
            continue
        if view == "year":
            key, label = (day.year,), str(day.year)
        elif view == "month":
            key, label = (day.year, day.month), day.strftime("%b")
        else:
            monday = day - timedelta(days=day.weekday())
            key, label = (monday.year, monday.month, monday.day), monday.strftime("%d/%m")
        current = buckets.get(key, (label, 0.0))
        buckets[key] = (label, current[1] + parse_number(s.get("total_earnings")))

    return [{"name": label, "earnings": round(total, 2)}
            for _, (label, total) in sorted(buckets.items())]
