"""Team slot bookkeeping: who holds the leader slot and each member slot, and since when.

Every slot keeps an append-only history of assignment intervals next to a
``current_holder_id`` pointer.  An entry without ``unassigned_at`` is the open
interval; closing an interval only ever stamps that field.  Removing a member
vacates its slot for good, adding a member always opens a brand-new slot.

The functions here only mutate the in-memory ``Team`` aggregate.  They never
raise on inconsistent state (an outgoing holder without an open entry, an
already vacant slot); the inapplicable step is skipped.  Validation,
authorization and persistence belong to the caller.
"""

import uuid
from datetime import datetime, timedelta, timezone

from app.teams.models import LeaderAssignment, LeaderSlot, MemberAssignment, MemberSlot, Team
from app.teams.schemas import MemberSlotHistoryOut, SlotAssignmentOut, TeamSlotHistoryOut


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (SQLite, legacy rows) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _open_entry(history, user_id: uuid.UUID):
    for entry in history:
        if entry.user_id == user_id and entry.unassigned_at is None:
            return entry
    return None


# --- Current state ---


def get_current_leader(team: Team) -> uuid.UUID | None:
    if team.leader_slot is not None and team.leader_slot.current_holder_id:
        return team.leader_slot.current_holder_id
    # Teams created before leader slots existed
    if team.team_leader_id:
        return team.team_leader_id
    return None


def _slot_is_occupied(slot: MemberSlot) -> bool:
    holder = slot.current_holder_id
    if holder is None:
        return False
    if not slot.history:
        # Holder without any history: legacy data, counted as occupied
        return True
    entries = [entry for entry in slot.history if entry.user_id == holder]
    if not entries:
        return False
    latest = max(entries, key=lambda entry: as_utc(entry.assigned_at))
    return latest.unassigned_at is None


def get_current_members(team: Team) -> list[uuid.UUID]:
    members: list[uuid.UUID] = []
    for slot in team.member_slots:
        if _slot_is_occupied(slot) and slot.current_holder_id not in members:
            members.append(slot.current_holder_id)
    return members


def get_all_team_members(team: Team) -> list[uuid.UUID]:
    """Current members followed by the leader, when not already a member."""
    everyone = get_current_members(team)
    leader = get_current_leader(team)
    if leader is not None and leader not in everyone:
        everyone.append(leader)
    return everyone


def is_team_leader(team: Team, user_id: uuid.UUID) -> bool:
    return get_current_leader(team) == user_id


def is_team_member(team: Team, user_id: uuid.UUID) -> bool:
    return user_id in get_current_members(team)


def belongs_to_team(team: Team, user_id: uuid.UUID) -> bool:
    return is_team_leader(team, user_id) or is_team_member(team, user_id)


def find_member_slot(team: Team, user_id: uuid.UUID) -> MemberSlot | None:
    """First slot currently held by ``user_id``."""
    for slot in team.member_slots:
        if slot.current_holder_id == user_id:
            return slot
    return None


# --- Mutations ---


def assign_leader(
    team: Team, new_leader_id: uuid.UUID, assigned_by: uuid.UUID, now: datetime
) -> None:
    """Hand the leader slot to ``new_leader_id``.

    Always records a transition, even when the user already leads the team.
    """
    if team.leader_slot is None:
        team.leader_slot = LeaderSlot(history=[])
    slot = team.leader_slot

    if slot.current_holder_id is not None:
        entry = _open_entry(slot.history, slot.current_holder_id)
        if entry is not None:
            entry.unassigned_at = now

    slot.current_holder_id = new_leader_id
    slot.history.append(
        LeaderAssignment(user_id=new_leader_id, assigned_at=now, assigned_by=assigned_by)
    )
    team.team_leader_id = new_leader_id


def remove_leader(team: Team, removed_by: uuid.UUID, now: datetime) -> None:
    slot = team.leader_slot
    if slot is not None and slot.current_holder_id is not None:
        entry = _open_entry(slot.history, slot.current_holder_id)
        if entry is not None:
            entry.unassigned_at = now
        slot.current_holder_id = None
    team.team_leader_id = None


def add_member(
    team: Team, user_id: uuid.UUID, assigned_by: uuid.UUID, now: datetime
) -> uuid.UUID:
    """Open a new slot held by ``user_id`` and return its id.

    Does not check for an existing membership; callers use ``belongs_to_team``.
    """
    slot_id = uuid.uuid4()
    team.member_slots.append(
        MemberSlot(
            id=slot_id,
            current_holder_id=user_id,
            history=[
                MemberAssignment(user_id=user_id, assigned_at=now, assigned_by=assigned_by)
            ],
        )
    )
    return slot_id


def remove_member(
    team: Team, user_id: uuid.UUID, removed_by: uuid.UUID, now: datetime
) -> None:
    slot = find_member_slot(team, user_id)
    if slot is None:
        return
    entry = _open_entry(slot.history, user_id)
    if entry is not None:
        entry.unassigned_at = now
    slot.current_holder_id = None


# --- History views ---


def _entry_out(entry) -> SlotAssignmentOut:
    return SlotAssignmentOut(
        user_id=entry.user_id,
        assigned_at=entry.assigned_at,
        unassigned_at=entry.unassigned_at,
        assigned_by=entry.assigned_by,
        is_current=entry.unassigned_at is None,
    )


def get_leader_history(team: Team) -> list[SlotAssignmentOut]:
    if team.leader_slot is None:
        return []
    return [_entry_out(entry) for entry in team.leader_slot.history]


def get_member_slot_history(team: Team, slot_id: uuid.UUID) -> list[SlotAssignmentOut]:
    for slot in team.member_slots:
        if slot.id == slot_id:
            return [_entry_out(entry) for entry in slot.history]
    return []


def get_team_history(team: Team) -> TeamSlotHistoryOut:
    return TeamSlotHistoryOut(
        leaders=get_leader_history(team),
        member_slots=[
            MemberSlotHistoryOut(slot_id=slot.id, history=get_member_slot_history(team, slot.id))
            for slot in team.member_slots
        ],
    )


def total_closed_tenure(history: TeamSlotHistoryOut) -> timedelta:
    """Summed length of every closed interval, leader and member slots alike."""
    entries = list(history.leaders)
    for slot in history.member_slots:
        entries.extend(slot.history)
    total = timedelta()
    for entry in entries:
        if entry.unassigned_at is not None:
            total += as_utc(entry.unassigned_at) - as_utc(entry.assigned_at)
    return total
