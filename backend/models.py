from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Optional, Literal
from pydantic import EmailStr

STATUS_PENDING = "pending"
STATUS_ON_SITE = "on site"
STATUS_COMPLETED = "completed"

ShiftStatus = Literal['pending', 'on site', 'completed']

# --- AUTH MODELS ---
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    created_at: str | datetime

class Token(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse

class ForgotPasswordRequest(BaseModel):
    email: EmailStr

class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=6)

class UserSession(BaseModel):
    """Identity of the caller, passed explicitly to every store call."""
    user_id: str
    email: str
    name: str
# -------------------

class Employer(BaseModel):
    id: str
    name: str
    default_rate: Optional[float] = None

    model_config = ConfigDict(extra="ignore")

class EmployerRateUpdate(BaseModel):
    default_rate: float

class Site(BaseModel):
    id: str
    site_name: str
    postal_code: str = ""

    model_config = ConfigDict(extra="ignore")

class Shift(BaseModel):
    id: str
    date: str
    start_time: str = ""
    end_time: str = ""
    hours: float = 0
    hourly_rate: float = 0
    total_earnings: float = 0
    # imports may carry statuses outside the three lifecycle values
    status: str
    employer_id: str
    site_id: str

    model_config = ConfigDict(extra="ignore")

class ShiftForm(BaseModel):
    """Add/edit shift form: employer and site are given by name."""
    date: date
    employer: str = Field(min_length=1)
    site_name: str = Field(min_length=1)
    postal_code: str = ""
    hourly_rate: float = Field(ge=0)
    start_time: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    hours: float = Field(gt=0)
    update_default_rate: bool = False

class ShiftUpdate(BaseModel):
    """History edit: partial update of an existing shift."""
    date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    hours: Optional[float] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    status: Optional[ShiftStatus] = None

class Stats(BaseModel):
    hours: float
    count: int
    earnings: float

class DashboardResponse(BaseModel):
    month: str
    total_earnings: float
    total_hours: float
    shift_count: int
    recent_shifts: list[Shift]
    active_shift: Optional[Shift] = None
    can_clock_out: bool = False

class HistoryResponse(BaseModel):
    month: str
    shifts: list[Shift]
    stats: Stats

class ChartPoint(BaseModel):
    name: str
    earnings: float

class ImportResult(BaseModel):
    employers_created: int
    sites_created: int
    shifts_created: int
    skipped: int
