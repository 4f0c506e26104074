"""Career timeline of a user across every team they ever led or joined.

A read-only fold over the slot histories of the given teams; nothing here
touches the database.
"""

import uuid
from datetime import datetime, timedelta

from app.teams.models import Team
from app.teams.schemas import SlotAssignmentOut
from app.teams.slots import as_utc, get_team_history
from app.users.models import User, UserRole
from app.users.schemas import (
    CurrentTeamOut,
    TimelineEntryOut,
    UserAnalyticsOut,
    UserHistoryOut,
    UserHistorySummaryOut,
    UserHistoryUserOut,
    UserOut,
)

_ONE_DAY = timedelta(days=1)


def _timeline_entry(
    team: Team,
    entry: SlotAssignmentOut,
    now: datetime,
    *,
    kind: str,
    role: UserRole,
    slot_id: uuid.UUID | None = None,
) -> TimelineEntryOut:
    end = entry.unassigned_at if entry.unassigned_at is not None else now
    return TimelineEntryOut(
        type=kind,
        team_id=team.id,
        team_name=team.name,
        slot_id=slot_id,
        start_date=entry.assigned_at,
        end_date=entry.unassigned_at,
        duration_days=(as_utc(end) - as_utc(entry.assigned_at)).days,
        assigned_by=entry.assigned_by,
        is_current=entry.is_current,
        role=role,
    )


def build_timeline(user_id: uuid.UUID, teams: list[Team], now: datetime) -> list[TimelineEntryOut]:
    """Every interval held by ``user_id``, oldest assignment first."""
    timeline: list[TimelineEntryOut] = []
    for team in teams:
        history = get_team_history(team)
        for entry in history.leaders:
            if entry.user_id == user_id:
                timeline.append(
                    _timeline_entry(
                        team, entry, now, kind="leader_assignment", role=UserRole.TEAM_LEADER
                    )
                )
        for slot in history.member_slots:
            for entry in slot.history:
                if entry.user_id == user_id:
                    timeline.append(
                        _timeline_entry(
                            team,
                            entry,
                            now,
                            kind="member_assignment",
                            role=UserRole.MEMBER,
                            slot_id=slot.slot_id,
                        )
                    )
    timeline.sort(key=lambda item: as_utc(item.start_date))
    return timeline


def closed_tenure(timeline: list[TimelineEntryOut]) -> timedelta:
    total = timedelta()
    for item in timeline:
        if item.end_date is not None:
            total += as_utc(item.end_date) - as_utc(item.start_date)
    return total


def build_user_history(user: User, teams: list[Team], now: datetime) -> UserHistoryOut:
    timeline = build_timeline(user.id, teams, now)
    closed = [item for item in timeline if item.end_date is not None]
    # Intervals left open on a deleted team do not make the user assigned
    live_teams = {team.id for team in teams if team.is_active}
    current = [item for item in timeline if item.is_current and item.team_id in live_teams]
    current_assignment = current[-1] if current else None

    total_tenure_days = closed_tenure(timeline) / _ONE_DAY
    analytics = UserAnalyticsOut(
        total_teams=len({item.team_id for item in timeline}),
        current_team=(
            CurrentTeamOut(
                id=current_assignment.team_id,
                name=current_assignment.team_name,
                role=current_assignment.role,
            )
            if current_assignment
            else None
        ),
        current_role=user.role,
        leadership_positions=sum(1 for item in timeline if item.type == "leader_assignment"),
        member_positions=sum(1 for item in timeline if item.type == "member_assignment"),
        total_tenure_days=total_tenure_days,
        average_stay_days=round(total_tenure_days / len(closed), 2) if closed else 0.0,
    )
    summary = UserHistorySummaryOut(
        total_assignments=len(timeline),
        unique_teams=analytics.total_teams,
        current_status="Active" if current_assignment else "Unassigned",
        longest_assignment_days=max((item.duration_days for item in timeline), default=0),
        shortest_assignment_days=min((item.duration_days for item in closed), default=0),
    )
    user_out = UserHistoryUserOut(
        **UserOut.model_validate(user).model_dump(),
        updated_at=user.updated_at,
        days_since_created=(as_utc(now) - as_utc(user.created_at)).days,
    )
    return UserHistoryOut(
        user=user_out,
        current_assignment=current_assignment,
        timeline=timeline,
        analytics=analytics,
        summary=summary,
    )
