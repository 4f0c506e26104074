import re
import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.users.models import UserRole

_USERNAME_PATTERN = re.compile(r"^[a-z0-9_-]+$")


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=30)
    email: EmailStr
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    role: UserRole = UserRole.MEMBER

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip().lower()
        if not _USERNAME_PATTERN.match(v):
            raise ValueError(
                "Username can only contain lowercase letters, numbers, underscores and hyphens"
            )
        return v


class UserUpdate(BaseModel):
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    is_active: bool | None = None


class UserOut(BaseModel):
    id: uuid.UUID
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    team_id: uuid.UUID | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Career report ---


class TimelineEntryOut(BaseModel):
    type: str  # "leader_assignment" | "member_assignment"
    team_id: uuid.UUID
    team_name: str
    slot_id: uuid.UUID | None = None
    start_date: datetime
    end_date: datetime | None = None
    duration_days: int
    assigned_by: uuid.UUID
    is_current: bool
    role: UserRole


class CurrentTeamOut(BaseModel):
    id: uuid.UUID
    name: str
    role: UserRole


class UserAnalyticsOut(BaseModel):
    total_teams: int = 0
    current_team: CurrentTeamOut | None = None
    current_role: UserRole
    leadership_positions: int = 0
    member_positions: int = 0
    total_tenure_days: float = 0.0
    average_stay_days: float = 0.0


class UserHistorySummaryOut(BaseModel):
    total_assignments: int
    unique_teams: int
    current_status: str
    longest_assignment_days: int
    shortest_assignment_days: int


class UserHistoryUserOut(UserOut):
    updated_at: datetime
    days_since_created: int


class UserHistoryOut(BaseModel):
    user: UserHistoryUserOut
    current_assignment: TimelineEntryOut | None = None
    timeline: list[TimelineEntryOut]
    analytics: UserAnalyticsOut
    summary: UserHistorySummaryOut
