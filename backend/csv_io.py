import io

import pandas as pd

from .calculations import parse_number
from .config import settings

# First five columns are the summary view; the rest let a re-import
# resolve the same employer and site.
EXPORT_COLUMNS = [
    "Date", "Site", "Hours", "Total", "Status",
    "Employer", "Postal Code", "Start Time", "End Time", "Hours in Decimal", "Hourly Rate",
]


def read_import_rows(content) -> list[dict]:
    """Parse an uploaded CSV (header row required) into a list of string-valued rows."""
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    if not content.strip():
        return []
    df = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient="records")


def _money(value) -> str:
    return f"{settings.CURRENCY_SYMBOL}{parse_number(value):.2f}"


def build_export_rows(shifts: list[dict], employers: dict, sites: dict) -> list[dict]:
    rows = []
    for s in shifts:
        site = sites.get(s.get("site_id")) or {}
        employer = employers.get(s.get("employer_id")) or {}
        rows.append({
            "Date": s.get("date"),
            "Site": site.get("site_name", ""),
            "Hours": s.get("hours"),
            "Total": _money(s.get("total_earnings")),
            "Status": s.get("status"),
            "Employer": employer.get("name", ""),
            "Postal Code": site.get("postal_code", ""),
            "Start Time": s.get("start_time", ""),
            "End Time": s.get("end_time", ""),
            "Hours in Decimal": s.get("hours"),
            "Hourly Rate": _money(s.get("hourly_rate")),
        })
    return rows


def rows_to_csv(rows: list[dict]) -> str:
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(index=False)


def export_filename(month: str) -> str:
    return f"Shifts_{month}.csv"
