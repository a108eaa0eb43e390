import logging
import uuid
from datetime import datetime, timedelta
from typing import Literal, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile

from .auth import create_access_token, get_current_user, get_password_hash, verify_password
from .calculations import (
    can_clock_out,
    compute_end_time,
    earnings_by_period,
    filter_shifts,
    find_active_shift,
    is_shift_active,
    local_now,
    month_bounds,
    round_earnings,
    summarize,
)
from .config import settings
from .csv_io import build_export_rows, export_filename, read_import_rows, rows_to_csv
from .db import BaseStore, StoreError, get_store
from .models import (
    STATUS_COMPLETED,
    STATUS_ON_SITE,
    STATUS_PENDING,
    ChartPoint,
    DashboardResponse,
    Employer,
    EmployerRateUpdate,
    ForgotPasswordRequest,
    HistoryResponse,
    ImportResult,
    ResetPasswordRequest,
    Shift,
    ShiftForm,
    ShiftUpdate,
    Site,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
    UserSession,
)
from .reconcile import reconcile_import_batch

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Shiftbook API")

# --- Helpers ---

def get_now() -> datetime:
    return local_now()

def current_month(now: datetime) -> str:
    return now.strftime("%Y-%m")

def parse_month(month: str) -> tuple[str, str]:
    try:
        return month_bounds(month)
    except ValueError:
        raise HTTPException(status_code=400, detail="Month must be in YYYY-MM format.")

def name_maps(store: BaseStore, user: UserSession) -> tuple[dict, dict]:
    employers = {e["id"]: e for e in store.list("employers", user)}
    sites = {s["id"]: s for s in store.list("sites", user)}
    return employers, sites

def get_shift_or_404(store: BaseStore, user: UserSession, shift_id: str) -> dict:
    shift = store.get("shifts", user, shift_id)
    if not shift:
        raise HTTPException(status_code=404, detail="Shift not found.")
    return shift

def resolve_employer(store: BaseStore, user: UserSession, form: ShiftForm) -> str:
    name = form.employer.strip()
    existing = next((e for e in store.list("employers", user)
                     if e["name"].strip().lower() == name.lower()), None)
    if existing is None:
        return store.create("employers", user, {"name": name, "default_rate": form.hourly_rate})

    if form.update_default_rate and existing.get("default_rate") != form.hourly_rate:
        store.update("employers", user, existing["id"], {"default_rate": form.hourly_rate})
        logger.info("Default rate for employer %s set to %s", existing["id"], form.hourly_rate)
    return existing["id"]

def resolve_site(store: BaseStore, user: UserSession, form: ShiftForm) -> str:
    name = form.site_name.strip()
    existing = next((s for s in store.list("sites", user)
                     if s["site_name"].strip().lower() == name.lower()), None)
    if existing is None:
        return store.create("sites", user, {"site_name": name, "postal_code": form.postal_code.upper().strip()})
    return existing["id"]

def shift_payload(store: BaseStore, user: UserSession, form: ShiftForm) -> dict:
    shift_date = form.date.isoformat()
    return {
        "date": shift_date,
        "start_time": form.start_time,
        "end_time": compute_end_time(shift_date, form.start_time, form.hours),
        "hours": form.hours,
        "hourly_rate": form.hourly_rate,
        "total_earnings": round_earnings(form.hours, form.hourly_rate),
        "employer_id": resolve_employer(store, user, form),
        "site_id": resolve_site(store, user, form),
    }

# --- Auth Endpoints ---

@app.post("/auth/register", response_model=UserResponse)
def register(user: UserCreate, store: BaseStore = Depends(get_store)):
    if store.find_user_by_email(user.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    uid = str(uuid.uuid4())
    try:
        store.create_user({
            "id": uid,
            "email": user.email,
            "name": user.name,
            "password_hash": get_password_hash(user.password),
        })
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    logger.info("Registered user %s", uid)
    return {"id": uid, "email": user.email, "name": user.name, "created_at": datetime.now()}

@app.post("/auth/login", response_model=Token)
def login(creds: UserLogin, store: BaseStore = Depends(get_store)):
    row = store.find_user_by_email(creds.email)
    if not row or not verify_password(creds.password, row['password_hash']):
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    token = create_access_token({"sub": row['id'], "email": row['email'], "name": row['name']})
    user_data = {"id": row['id'], "email": row['email'], "name": row['name'], "created_at": str(row['created_at'])}
    return {"access_token": token, "token_type": "bearer", "user": user_data}

@app.post("/auth/forgot-password")
def forgot_password(req: ForgotPasswordRequest, store: BaseStore = Depends(get_store)):
    row = store.find_user_by_email(req.email)
    if not row:
        return {"message": "If email exists, reset link sent."}

    token = str(uuid.uuid4())
    store.create_reset_token({
        "id": str(uuid.uuid4()),
        "user_id": row['id'],
        "token": token,
        "expires_at": (datetime.now() + timedelta(hours=1)).isoformat(),
    })

    # No mail transport: the link goes to the server log
    logger.info("[MOCK EMAIL] Password reset link: %s/?reset_token=%s", settings.RESET_LINK_BASE, token)
    return {"message": "If email exists, reset link sent."}

@app.post("/auth/reset-password")
def reset_password(req: ResetPasswordRequest, store: BaseStore = Depends(get_store)):
    row = store.find_reset_token(req.token)
    if not row:
        raise HTTPException(status_code=400, detail="Invalid token")

    expires = datetime.fromisoformat(str(row['expires_at']).replace('Z', '+00:00'))
    if datetime.now(expires.tzinfo) > expires:
        raise HTTPException(status_code=400, detail="Token expired")

    store.set_password_hash(row['user_id'], get_password_hash(req.new_password))
    store.mark_reset_token_used(row['id'])
    return {"message": "Password updated successfully"}

# --- Employers & Sites ---

@app.get("/employers", response_model=list[Employer])
def list_employers(user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store)):
    return store.list("employers", user)

@app.patch("/employers/{employer_id}", response_model=Employer)
def update_employer_rate(employer_id: str, req: EmployerRateUpdate,
                         user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store)):
    if not store.update("employers", user, employer_id, {"default_rate": req.default_rate}):
        raise HTTPException(status_code=404, detail="Employer not found.")
    return store.get("employers", user, employer_id)

@app.get("/sites", response_model=list[Site])
def list_sites(user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store)):
    return store.list("sites", user)

# --- Shifts ---

@app.post("/shifts", response_model=Shift)
def create_shift(form: ShiftForm, user: UserSession = Depends(get_current_user),
                 store: BaseStore = Depends(get_store)):
    # New entries always start pending, whatever their date
    payload = shift_payload(store, user, form)
    payload["status"] = STATUS_PENDING
    shift_id = store.create("shifts", user, payload)
    return store.get("shifts", user, shift_id)

@app.get("/shifts/{shift_id}", response_model=Shift)
def get_shift(shift_id: str, user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store)):
    return get_shift_or_404(store, user, shift_id)

@app.put("/shifts/{shift_id}", response_model=Shift)
def edit_shift(shift_id: str, form: ShiftForm, user: UserSession = Depends(get_current_user),
               store: BaseStore = Depends(get_store)):
    get_shift_or_404(store, user, shift_id)
    store.update("shifts", user, shift_id, shift_payload(store, user, form))
    return store.get("shifts", user, shift_id)

@app.patch("/shifts/{shift_id}", response_model=Shift)
def update_shift(shift_id: str, req: ShiftUpdate, user: UserSession = Depends(get_current_user),
                 store: BaseStore = Depends(get_store)):
    shift = get_shift_or_404(store, user, shift_id)
    changes = req.model_dump(exclude_none=True)

    if "hours" in changes or "hourly_rate" in changes:
        hours = changes.get("hours", shift["hours"])
        rate = changes.get("hourly_rate", shift["hourly_rate"])
        changes["total_earnings"] = round_earnings(hours, rate)

    if "end_time" not in changes and {"date", "start_time", "hours"} & changes.keys():
        merged = {**shift, **changes}
        changes["end_time"] = compute_end_time(merged["date"], merged["start_time"], merged["hours"])

    store.update("shifts", user, shift_id, changes)
    return store.get("shifts", user, shift_id)

@app.delete("/shifts/{shift_id}")
def delete_shift(shift_id: str, user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store)):
    if not store.delete("shifts", user, shift_id):
        raise HTTPException(status_code=404, detail="Shift not found.")
    return {"status": "deleted"}

@app.post("/shifts/{shift_id}/clock-in", response_model=Shift)
def clock_in(shift_id: str, user: UserSession = Depends(get_current_user),
             store: BaseStore = Depends(get_store), now: datetime = Depends(get_now)):
    shift = get_shift_or_404(store, user, shift_id)

    if shift["status"] != STATUS_PENDING:
        raise HTTPException(status_code=400, detail=f"Cannot clock in: shift is {shift['status']}.")
    if not is_shift_active(shift, now):
        raise HTTPException(status_code=400, detail="Clock-in opens one hour before the shift starts.")

    store.update("shifts", user, shift_id, {"status": STATUS_ON_SITE})
    return store.get("shifts", user, shift_id)

@app.post("/shifts/{shift_id}/clock-out", response_model=Shift)
def clock_out(shift_id: str, user: UserSession = Depends(get_current_user),
              store: BaseStore = Depends(get_store), now: datetime = Depends(get_now)):
    shift = get_shift_or_404(store, user, shift_id)

    if shift["status"] != STATUS_ON_SITE:
        raise HTTPException(status_code=400, detail="Cannot clock out: you are not on site.")
    if not can_clock_out(shift, now):
        raise HTTPException(status_code=400, detail="Clock-out opens one hour before the scheduled end.")

    store.update("shifts", user, shift_id, {"status": STATUS_COMPLETED})
    return store.get("shifts", user, shift_id)

# --- Views ---

@app.get("/dashboard", response_model=DashboardResponse)
def dashboard(user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store),
              now: datetime = Depends(get_now)):
    month = current_month(now)
    start, end = parse_month(month)
    stats = summarize(store.list("shifts", user, date_from=start, date_to=end))

    recent = store.list("shifts", user, descending=True, limit=settings.RECENT_SHIFTS_LIMIT)
    active = find_active_shift(recent, now)

    return {
        "month": month,
        "total_earnings": stats["earnings"],
        "total_hours": stats["hours"],
        "shift_count": stats["count"],
        "recent_shifts": recent,
        "active_shift": active,
        "can_clock_out": bool(active) and can_clock_out(active, now),
    }

def month_shifts(store: BaseStore, user: UserSession, month: str, status: str,
                 employer: str, site: str) -> tuple[list[dict], dict, dict]:
    start, end = parse_month(month)
    employers, sites = name_maps(store, user)
    shifts = filter_shifts(
        store.list("shifts", user, date_from=start, date_to=end, descending=True),
        {k: v["name"] for k, v in employers.items()},
        {k: v["site_name"] for k, v in sites.items()},
        status=status, employer=employer, site=site,
    )
    return shifts, employers, sites

@app.get("/history", response_model=HistoryResponse)
def history(month: Optional[str] = None, status: str = "all", employer: str = "", site: str = "",
            user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store),
            now: datetime = Depends(get_now)):
    month = month or current_month(now)
    shifts, _, _ = month_shifts(store, user, month, status, employer, site)
    return {"month": month, "shifts": shifts, "stats": summarize(shifts)}

@app.get("/charts", response_model=list[ChartPoint])
def charts(view: Literal["week", "month", "year"] = "week",
           user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store)):
    return earnings_by_period(store.list("shifts", user), view)

# --- Import / Export ---

@app.post("/import", response_model=ImportResult)
def import_shifts(file: UploadFile = File(...), user: UserSession = Depends(get_current_user),
                  store: BaseStore = Depends(get_store), now: datetime = Depends(get_now)):
    try:
        rows = read_import_rows(file.file.read())
    except (ValueError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail=f"Could not read CSV: {e}")

    batch = reconcile_import_batch(
        rows,
        store.list("employers", user),
        store.list("sites", user),
        today=now.date(),
    )

    try:
        store.commit_batch(user, batch)
    except StoreError:
        raise HTTPException(status_code=500, detail="Import failed. No records were saved.")

    return {
        "employers_created": len(batch.new_employers),
        "sites_created": len(batch.new_sites),
        "shifts_created": len(batch.new_shifts),
        "skipped": batch.skipped,
    }

@app.get("/export")
def export_shifts(month: Optional[str] = None, status: str = "all", employer: str = "", site: str = "",
                  user: UserSession = Depends(get_current_user), store: BaseStore = Depends(get_store),
                  now: datetime = Depends(get_now)):
    month = month or current_month(now)
    shifts, employers, sites = month_shifts(store, user, month, status, employer, site)
    csv_text = rows_to_csv(build_export_rows(shifts, employers, sites))
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(month)}"'},
    )
