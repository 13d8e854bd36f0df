"""Pydantic schemas for API request/response validation."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import HabitFrequency, HabitStatus
from services.streak_status_service import StreakStatus


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class DetailedHealthResponse(HealthResponse):
    """Health check with component status."""

    database: bool
    pool: PoolStatusResponse | None = None


# =============================================================================
# Habits
# =============================================================================


class HabitBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=50)
    frequency: HabitFrequency = HabitFrequency.DAILY

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class HabitCreate(HabitBase):
    """Request to create a habit."""

    habit_status: HabitStatus = HabitStatus.ACTIVE


class HabitUpdate(BaseModel):
    """Partial update. Streak fields are not editable."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=50)
    frequency: HabitFrequency | None = None
    habit_status: HabitStatus | None = None

    @field_validator("title", "frequency", "habit_status")
    @classmethod
    def not_null_if_set(cls, v):
        if v is None:
            raise ValueError("field may be omitted but not null")
        return v


class HabitResponse(BaseModel):
    """A habit with its cached streak state."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None = None
    category: str | None = None
    frequency: HabitFrequency
    habit_status: HabitStatus
    current_streak: int
    longest_streak: int
    last_completed_date: date | None = None
    streak_start_date: date | None = None
    created_at: datetime
    updated_at: datetime


class HabitWithStatusResponse(HabitResponse):
    """Habit plus values derived for display on a given day."""

    is_completed: bool
    display_streak: int
    streak_status: StreakStatus
    streak_deadline: date | None = None
    time_remaining_seconds: int | None = None


class HabitListResponse(BaseModel):
    selected_date: date
    habits: list[HabitWithStatusResponse]


class StreakAlertsResponse(BaseModel):
    """Habits whose streak needs attention."""

    at_risk: list[HabitWithStatusResponse]
    expired: list[HabitWithStatusResponse]


# =============================================================================
# Completions
# =============================================================================


class CompletionCreate(BaseModel):
    """Request to mark a habit complete for a calendar day."""

    habit_id: str = Field(min_length=1, max_length=36)
    completed_date: date


class CompletionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    habit_id: str
    completed_date: date
    completed_at: datetime


class CompletionResultResponse(BaseModel):
    """A ledger change together with the recomputed habit."""

    completion: CompletionResponse | None = None
    habit: HabitResponse


class CompletionToggleRequest(BaseModel):
    completed: bool
    # Defaults to today in the application timezone
    completed_date: date | None = None


class CompletionToggleResponse(BaseModel):
    habit_id: str
    completed_date: date
    completed: bool
    changed: bool
    message: str
    habit: HabitResponse


# =============================================================================
# Scheduler
# =============================================================================


class ReconciliationResponse(BaseModel):
    """Summary of a daily reconciliation run."""

    success: bool = True
    processed_habits: int
    reset_habits: int
    recalculated_habits: int
    failed_habits: int
    failed_habit_ids: list[str]
    target_date: date
    yesterday_date: date
