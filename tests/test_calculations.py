from datetime import date, datetime

import pytest

from backend.calculations import (
    can_clock_out,
    compute_end_time,
    derive_import_status,
    earnings_by_period,
    filter_shifts,
    find_active_shift,
    is_shift_active,
    month_bounds,
    parse_money,
    parse_number,
    parse_time,
    round_earnings,
    summarize,
)


def make_shift(**overrides):
    shift = {
        "id": "s1",
        "date": "2024-03-15",
        "start_time": "09:00",
        "end_time": "17:00",
        "hours": 8,
        "hourly_rate": 12.5,
        "total_earnings": 100.0,
        "status": "pending",
        "employer_id": "e1",
        "site_id": "st1",
    }
    shift.update(overrides)
    return shift


# --- compute_end_time ---

def test_end_time_wraps_past_midnight():
    assert compute_end_time("2024-01-01", "22:00", 5) == "03:00"


def test_end_time_decimal_hours():
    assert compute_end_time("2024-01-01", "09:00", 7.5) == "16:30"
    assert compute_end_time("2024-01-01", "09:15", "0.25") == "09:30"


def test_end_time_accepts_date_objects():
    assert compute_end_time(date(2024, 1, 1), "08:00", 2) == "10:00"


@pytest.mark.parametrize("args", [
    ("", "09:00", 8),
    ("2024-01-01", "", 8),
    ("2024-01-01", "09:00", 0),
    ("2024-01-01", "09:00", None),
])
def test_end_time_missing_input_is_empty(args):
    assert compute_end_time(*args) == ""


def test_end_time_garbage_is_empty():
    assert compute_end_time("not-a-date", "09:00", 8) == ""
    assert compute_end_time("2024-01-01", "nine", 8) == ""
    assert compute_end_time("2024-01-01", "09:00", "abc") == ""


def test_end_time_out_of_calendar_range_is_empty():
    assert compute_end_time("2024-01-01", "09:00", 1e8) == ""
    assert compute_end_time("2024-01-01", "09:00", "1e999") == ""
    assert compute_end_time("9999-12-31", "23:00", 2) == ""


# --- is_shift_active ---

def test_pending_shift_within_an_hour_of_start_is_active():
    shift = make_shift(start_time="10:00")
    assert is_shift_active(shift, datetime(2024, 3, 15, 9, 0))
    assert is_shift_active(shift, datetime(2024, 3, 15, 10, 45))
    assert is_shift_active(shift, datetime(2024, 3, 15, 11, 0))


def test_pending_shift_outside_window_is_not_active():
    shift = make_shift(start_time="10:00")
    assert not is_shift_active(shift, datetime(2024, 3, 15, 8, 59))
    assert not is_shift_active(shift, datetime(2024, 3, 15, 11, 1))


def test_completed_shift_is_never_active():
    shift = make_shift(start_time="10:00", status="completed")
    assert not is_shift_active(shift, datetime(2024, 3, 15, 10, 0))


def test_on_site_shift_stays_active_all_day():
    shift = make_shift(start_time="06:00", status="on site")
    assert is_shift_active(shift, datetime(2024, 3, 15, 23, 30))


def test_shift_on_another_day_is_not_active():
    shift = make_shift(date="2024-03-14", start_time="10:00", status="on site")
    assert not is_shift_active(shift, datetime(2024, 3, 15, 10, 0))


def test_unreadable_start_time_only_active_when_on_site():
    now = datetime(2024, 3, 15, 10, 0)
    assert not is_shift_active(make_shift(start_time="??"), now)
    assert is_shift_active(make_shift(start_time="??", status="on site"), now)


def test_find_active_shift_takes_first_match():
    shifts = [
        make_shift(id="a", start_time="10:00"),
        make_shift(id="b", start_time="09:45"),
    ]
    assert find_active_shift(shifts, datetime(2024, 3, 15, 9, 30))["id"] == "a"
    assert find_active_shift(shifts, datetime(2024, 3, 15, 14, 0)) is None


# --- can_clock_out ---

def test_clock_out_requires_on_site():
    shift = make_shift(status="pending")
    assert not can_clock_out(shift, datetime(2024, 3, 15, 18, 0))


def test_clock_out_gate_opens_one_hour_before_end():
    shift = make_shift(status="on site", start_time="09:00", hours=8)
    assert not can_clock_out(shift, datetime(2024, 3, 15, 15, 59))
    assert can_clock_out(shift, datetime(2024, 3, 15, 16, 0))
    assert can_clock_out(shift, datetime(2024, 3, 15, 23, 0))


def test_clock_out_overnight_shift_uses_real_end():
    shift = make_shift(status="on site", start_time="22:00", hours=5, end_time="03:00")
    assert not can_clock_out(shift, datetime(2024, 3, 15, 22, 30))
    assert can_clock_out(shift, datetime(2024, 3, 16, 2, 0))


def test_clock_out_falls_back_to_stored_end_time():
    shift = make_shift(status="on site", start_time="", hours=0, end_time="17:00")
    assert not can_clock_out(shift, datetime(2024, 3, 15, 15, 0))
    assert can_clock_out(shift, datetime(2024, 3, 15, 16, 0))


def test_clock_out_follows_stored_end_time_over_hours():
    shift = make_shift(status="on site", start_time="09:00", end_time="12:00", hours=8)
    assert not can_clock_out(shift, datetime(2024, 3, 15, 10, 59))
    assert can_clock_out(shift, datetime(2024, 3, 15, 11, 30))


def test_clock_out_uses_hours_when_end_time_unreadable():
    shift = make_shift(status="on site", start_time="09:00", end_time="", hours=8)
    assert not can_clock_out(shift, datetime(2024, 3, 15, 15, 59))
    assert can_clock_out(shift, datetime(2024, 3, 15, 16, 0))


def test_clock_out_with_absurd_hours_stays_closed():
    shift = make_shift(status="on site", end_time="", hours=1e8)
    assert not can_clock_out(shift, datetime(2024, 3, 15, 16, 0))


# --- derive_import_status ---

TODAY = date(2024, 3, 15)


def test_status_today_is_on_site():
    assert derive_import_status("2024-03-15", TODAY, "completed") == "on site"


def test_status_future_is_pending():
    assert derive_import_status("2024-03-16", TODAY, "completed") == "pending"


def test_status_past_defaults_to_completed():
    assert derive_import_status("2024-03-14", TODAY, "") == "completed"
    assert derive_import_status("2024-03-14", TODAY, None) == "completed"


def test_status_past_keeps_file_status_lowercased():
    assert derive_import_status("2024-03-14", TODAY, "Cancelled") == "cancelled"


def test_status_malformed_date_treated_as_past():
    assert derive_import_status("2024-13-45", TODAY, "") == "completed"


# --- parsing and aggregation ---

def test_parse_number_is_lenient():
    assert parse_number("7.5") == 7.5
    assert parse_number("7.5h") == 7.5
    assert parse_number("abc") == 0
    assert parse_number(None) == 0
    assert parse_number("", default=None) is None
    assert parse_number(float("nan")) == 0
    assert parse_number("1e999") == 0
    assert parse_money("1e999", default=None) is None


def test_parse_money_strips_symbols_and_separators():
    assert parse_money("£1,234.50") == 1234.5
    assert parse_money(" $12 ") == 12
    assert parse_money("") == 0


def test_parse_time():
    assert parse_time("9:05").strftime("%H:%M") == "09:05"
    assert parse_time("25:00") is None
    assert parse_time("") is None


def test_round_earnings_half_up():
    assert round_earnings(7.5, 12.345) == 92.59
    assert round_earnings(8, 12.5) == 100.0


def test_month_bounds():
    assert month_bounds("2024-02") == ("2024-02-01", "2024-02-29")
    assert month_bounds("2023-12") == ("2023-12-01", "2023-12-31")
    with pytest.raises(ValueError):
        month_bounds("March")


def test_summarize():
    stats = summarize([make_shift(hours=7.5, total_earnings=90.0), make_shift(hours="4", total_earnings=None)])
    assert stats == {"hours": 11.5, "count": 2, "earnings": 90.0}


def test_filter_shifts_by_status_and_names():
    shifts = [
        make_shift(id="a", status="completed", employer_id="e1", site_id="st1"),
        make_shift(id="b", status="pending", employer_id="e2", site_id="st2"),
    ]
    employers = {"e1": "Acme Ltd", "e2": "Bolt"}
    sites = {"st1": "Tata Steel", "st2": "Docks"}

    assert [s["id"] for s in filter_shifts(shifts, employers, sites, status="Completed")] == ["a"]
    assert [s["id"] for s in filter_shifts(shifts, employers, sites, employer="acme")] == ["a"]
    assert [s["id"] for s in filter_shifts(shifts, employers, sites, site="dock")] == ["b"]
    assert len(filter_shifts(shifts, employers, sites)) == 2


def test_earnings_by_week_starts_on_monday():
    shifts = [
        make_shift(date="2024-03-13", total_earnings=50),
        make_shift(date="2024-03-11", total_earnings=100),
        make_shift(date="2024-03-04", total_earnings=20),
        make_shift(date="garbage", total_earnings=999),
    ]
    assert earnings_by_period(shifts, "week") == [
        {"name": "04/03", "earnings": 20.0},
        {"name": "11/03", "earnings": 150.0},
    ]


def test_earnings_by_month_and_year_are_chronological():
    shifts = [
        make_shift(date="2024-02-10", total_earnings=10),
        make_shift(date="2023-12-01", total_earnings=5),
        make_shift(date="2024-02-20", total_earnings=15),
    ]
    assert earnings_by_period(shifts, "month") == [
        {"name": "Dec", "earnings": 5.0},
        {"name": "Feb", "earnings": 25.0},
    ]
    assert earnings_by_period(shifts, "year") == [
        {"name": "2023", "earnings": 5.0},
        {"name": "2024", "earnings": 25.0},
    ]
