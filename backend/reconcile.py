"""
Import reconciliation.

Turns loosely-typed spreadsheet rows into staged Employer, Site and Shift
records. Employers and sites are matched by trimmed, case-insensitive name
against the user's existing records plus whatever this batch has already
staged, so a name appearing on several rows is only created once.

Nothing here touches storage: the caller commits the returned batch in one
all-or-nothing write.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional

from .calculations import (
    compute_end_time,
    derive_import_status,
    parse_money,
    parse_number,
    round_earnings,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportBatch:
    new_employers: list[dict] = field(default_factory=list)
    new_sites: list[dict] = field(default_factory=list)
    new_shifts: list[dict] = field(default_factory=list)
    skipped: int = 0


def _text(row: dict, key: str) -> str:
    value = row.get(key)
    return "" if value is None else str(value).strip()


def parse_row_date(raw: str) -> str:
    """
    M/D/YYYY -> YYYY-MM-DD with zero-padded month and day. Values are not
    range-checked. ISO dates (as written by our own export) pass through.
    """
    raw = raw.strip()
    if "/" not in raw:
        return raw
    month, day, year = (raw.split("/") + ["", ""])[:3]
    return f"{year.strip()}-{month.strip().zfill(2)}-{day.strip().zfill(2)}"


def _match(records: list[dict], key: str, name: str) -> Optional[dict]:
    wanted = name.lower()
    return next((r for r in records if (r.get(key) or "").strip().lower() == wanted), None)


def reconcile_import_batch(
    rows: Iterable[dict],
    existing_employers: list[dict],
    existing_sites: list[dict],
    today: date,
    new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> ImportBatch:
    batch = ImportBatch()
    employers = list(existing_employers)
    sites = list(existing_sites)

    for row in rows:
        raw_date = _text(row, "Date")
        employer_name = _text(row, "Employer")
        if not raw_date or not employer_name:
            batch.skipped += 1
            continue

        iso_date = parse_row_date(raw_date)

        employer = _match(employers, "name", employer_name)
        if employer is None:
            employer = {"id": new_id(), "name": employer_name, "default_rate": None}
            batch.new_employers.append(employer)
            employers.append(employer)

        site_name = _text(row, "Site")
        site = _match(sites, "site_name", site_name)
        if site is None:
            site = {"id": new_id(), "site_name": site_name, "postal_code": _text(row, "Postal Code")}
            batch.new_sites.append(site)
            sites.append(site)

        hours = parse_number(_text(row, "Hours in Decimal"))
        rate = parse_money(_text(row, "Hourly Rate"))
        total = parse_money(_text(row, "Total"), default=None)
        # A blank Total is hours x rate rather than 0
        if total is None:
            total = round_earnings(hours, rate)
        start_time = _text(row, "Start Time")

        batch.new_shifts.append({
            "id": new_id(),
            "date": iso_date,
            "start_time": start_time,
            "end_time": _text(row, "End Time") or compute_end_time(iso_date, start_time, hours),
            "hours": hours,
            "hourly_rate": rate,
            "total_earnings": total,
            "status": derive_import_status(iso_date, today, _text(row, "Status")),
            "employer_id": employer["id"],
            "site_id": site["id"],
        })

    logger.info(
        "Reconciled import: %d shifts, %d new employers, %d new sites, %d rows skipped",
        len(batch.new_shifts), len(batch.new_employers), len(batch.new_sites), batch.skipped,
    )
    return batch
