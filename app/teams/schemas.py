import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, RootModel, field_validator

from app.users.models import UserRole


class TeamCreate(BaseModel):
    name: str = Field(max_length=100)
    description: str = Field(max_length=500)
    leader_id: uuid.UUID | None = None
    member_ids: list[uuid.UUID] = []

    @field_validator("name", "description")
    @classmethod
    def strip_and_require(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name and description are required")
        return v


class TeamUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("name", "description")
    @classmethod
    def strip_and_require(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be blank")
        return v


class TeamUserOut(BaseModel):
    id: uuid.UUID
    username: str
    first_name: str
    last_name: str
    role: UserRole

    model_config = {"from_attributes": True}


# --- Slot history views ---


class SlotAssignmentOut(BaseModel):
    user_id: uuid.UUID
    assigned_at: datetime
    unassigned_at: datetime | None = None
    assigned_by: uuid.UUID
    is_current: bool


class MemberSlotHistoryOut(BaseModel):
    slot_id: uuid.UUID
    history: list[SlotAssignmentOut]


class TeamSlotHistoryOut(BaseModel):
    leaders: list[SlotAssignmentOut]
    member_slots: list[MemberSlotHistoryOut]


class TeamHistoryOut(BaseModel):
    team_id: uuid.UUID
    team_name: str
    history: TeamSlotHistoryOut


# --- Teams ---


class TeamOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    version_id: int
    current_leader: TeamUserOut | None = None
    members: list[TeamUserOut] = []
    member_count: int = 0


class TeamDetailOut(TeamOut):
    leader_history: list[SlotAssignmentOut] = []


class TeamDeleteOut(BaseModel):
    team_name: str
    users_affected: int
    deletion_type: str = "soft"
    can_restore: bool = True


# --- Slot operations ---


class AssignLeader(BaseModel):
    operation: Literal["assign_leader"]
    user_id: uuid.UUID


class RemoveLeader(BaseModel):
    operation: Literal["remove_leader"]


class AddMember(BaseModel):
    operation: Literal["add_member"]
    user_id: uuid.UUID


class RemoveMember(BaseModel):
    operation: Literal["remove_member"]
    user_id: uuid.UUID


SlotOperation = Annotated[
    AssignLeader | RemoveLeader | AddMember | RemoveMember,
    Field(discriminator="operation"),
]


class SlotOperationRequest(RootModel[SlotOperation]):
    """Request body of the slots endpoint, tagged by ``operation``."""


class SlotOperationOut(BaseModel):
    team_id: uuid.UUID
    operation: str
    user_id: uuid.UUID | None = None
    slot_id: uuid.UUID | None = None
    team: TeamOut


# --- Team leader view ---


class LedMemberOut(TeamUserOut):
    email: str
    slot_id: uuid.UUID | None = None
    assignment_history: list[SlotAssignmentOut] = []
    join_date: datetime
    tenure_days: int
    total_assignments: int


class LedTeamOut(BaseModel):
    id: uuid.UUID
    name: str
    member_count: int


class LedTeamMembersOut(BaseModel):
    team: LedTeamOut
    members: list[LedMemberOut]
