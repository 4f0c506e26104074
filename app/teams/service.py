import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.teams.models import LeaderSlot, MemberSlot, Team
from app.teams.schemas import (
    AddMember,
    AssignLeader,
    LedMemberOut,
    LedTeamMembersOut,
    LedTeamOut,
    RemoveLeader,
    RemoveMember,
    SlotOperation,
    SlotOperationOut,
    TeamCreate,
    TeamDeleteOut,
    TeamDetailOut,
    TeamHistoryOut,
    TeamOut,
    TeamUpdate,
    TeamUserOut,
)
from app.teams.slots import (
    add_member,
    as_utc,
    assign_leader,
    belongs_to_team,
    find_member_slot,
    get_current_leader,
    get_current_members,
    get_leader_history,
    get_member_slot_history,
    get_team_history,
    is_team_leader,
    is_team_member,
    remove_leader,
    remove_member,
)
from app.users.models import User, UserRole
from app.users.service import get_user_by_id, get_users_by_ids

logger = logging.getLogger(__name__)

_DELETED_SUFFIX = " [DELETED]"


class TeamConflictError(Exception):
    """The team kept changing underneath an update; the caller may try again."""


class TeamInUseError(ValueError):
    def __init__(self, team_name: str, user_count: int):
        super().__init__("Team has dependencies that must be handled first")
        self.team_name = team_name
        self.user_count = user_count


def _team_query():
    return select(Team).options(
        selectinload(Team.leader_slot).selectinload(LeaderSlot.history),
        selectinload(Team.member_slots).selectinload(MemberSlot.history),
    )


async def get_team(db: AsyncSession, team_id: uuid.UUID, *, refresh: bool = False) -> Team | None:
    query = _team_query().where(Team.id == team_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_teams(db: AsyncSession) -> list[Team]:
    result = await db.execute(
        _team_query().where(Team.is_active.is_(True)).order_by(Team.created_at.desc())
    )
    return list(result.scalars().all())


async def _get_active_team_by_name(db: AsyncSession, name: str) -> Team | None:
    result = await db.execute(
        select(Team).where(Team.name == name, Team.is_active.is_(True))
    )
    return result.scalars().first()


# --- Response shaping ---


def _team_out(team: Team, users: dict[uuid.UUID, User]) -> TeamOut:
    leader_id = get_current_leader(team)
    member_ids = get_current_members(team)
    return TeamOut(
        id=team.id,
        name=team.name,
        description=team.description,
        is_active=team.is_active,
        created_at=team.created_at,
        updated_at=team.updated_at,
        version_id=team.version_id,
        current_leader=(
            TeamUserOut.model_validate(users[leader_id]) if leader_id in users else None
        ),
        members=[TeamUserOut.model_validate(users[i]) for i in member_ids if i in users],
        member_count=len(member_ids),
    )


async def build_team_outs(db: AsyncSession, teams: list[Team]) -> list[TeamOut]:
    user_ids: set[uuid.UUID] = set()
    for team in teams:
        user_ids.update(get_current_members(team))
        leader_id = get_current_leader(team)
        if leader_id:
            user_ids.add(leader_id)
    users = await get_users_by_ids(db, list(user_ids))
    return [_team_out(team, users) for team in teams]


async def build_team_detail(db: AsyncSession, team: Team) -> TeamDetailOut:
    ids = get_current_members(team)
    leader_id = get_current_leader(team)
    if leader_id:
        ids.append(leader_id)
    users = await get_users_by_ids(db, ids)
    return TeamDetailOut(
        **_team_out(team, users).model_dump(),
        leader_history=get_leader_history(team),
    )


def build_team_history(team: Team) -> TeamHistoryOut:
    return TeamHistoryOut(team_id=team.id, team_name=team.name, history=get_team_history(team))


# --- Team administration ---


async def create_team(db: AsyncSession, data: TeamCreate, actor: User) -> Team:
    if await _get_active_team_by_name(db, data.name):
        raise ValueError("Team name already exists")

    leader = None
    if data.leader_id:
        leader = await get_user_by_id(db, data.leader_id)
        if not leader or not leader.is_active:
            raise ValueError("Invalid team leader")

    member_ids = [i for i in dict.fromkeys(data.member_ids) if i != data.leader_id]
    members = await get_users_by_ids(db, member_ids)
    if any(i not in members or not members[i].is_active for i in member_ids):
        raise ValueError("Invalid team member")
    if any(u.team_id is not None for u in [leader, *members.values()] if u):
        raise ValueError("User already belongs to another team")

    team = Team(
        id=uuid.uuid4(),
        name=data.name,
        description=data.description,
        created_by=actor.id,
        leader_slot=LeaderSlot(history=[]),
        member_slots=[],
    )
    db.add(team)
    # Users reference the team row, so it has to exist first
    await db.flush()

    now = datetime.now(timezone.utc)
    if leader:
        assign_leader(team, leader.id, actor.id, now)
        leader.team_id = team.id
        leader.role = UserRole.TEAM_LEADER
    for member_id in member_ids:
        add_member(team, member_id, actor.id, now)
        members[member_id].team_id = team.id

    await db.commit()
    logger.info(
        "Team %s created by %s (leader=%s, members=%d)",
        team.id,
        actor.id,
        leader.id if leader else None,
        len(member_ids),
    )
    return await get_team(db, team.id)  # type: ignore[return-value]


async def update_team(db: AsyncSession, team: Team, data: TeamUpdate) -> Team:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes and changes["name"] != team.name:
        if await _get_active_team_by_name(db, changes["name"]):
            raise ValueError("Team name already exists")
    for field, value in changes.items():
        setattr(team, field, value)
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise TeamConflictError("Team was modified concurrently, reload and try again")
    return await get_team(db, team.id)  # type: ignore[return-value]


async def delete_team(
    db: AsyncSession, team: Team, actor: User, force: bool = False
) -> TeamDeleteOut:
    """Soft-delete a team, detaching its users in the same transaction.

    Slot history is left untouched so career reports keep covering the team.
    """
    user_count = await db.scalar(
        select(func.count()).select_from(User).where(User.team_id == team.id)
    )
    if user_count and not force:
        raise TeamInUseError(team.name, user_count)

    await db.execute(
        update(User)
        .where(User.team_id == team.id, User.role == UserRole.TEAM_LEADER)
        .values(role=UserRole.MEMBER)
    )
    detached = await db.execute(
        update(User).where(User.team_id == team.id).values(team_id=None)
    )

    team_name = team.name
    team.is_active = False
    team.deleted_at = datetime.now(timezone.utc)
    team.deleted_by = actor.username
    team.original_name = team_name
    team.name = f"{team_name}{_DELETED_SUFFIX}"
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise TeamConflictError("Team was modified concurrently, reload and try again")

    logger.info(
        "Team %s soft-deleted by %s (%d users detached)", team.id, actor.id, detached.rowcount
    )
    return TeamDeleteOut(team_name=team_name, users_affected=detached.rowcount)


async def restore_team(db: AsyncSession, team: Team) -> Team:
    if team.is_active:
        raise ValueError("Team is not deleted")
    name = team.original_name or team.name.removesuffix(_DELETED_SUFFIX)
    if await _get_active_team_by_name(db, name):
        raise ValueError("Team name already exists")

    team.is_active = True
    team.name = name
    team.deleted_at = None
    team.deleted_by = None
    team.original_name = None
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise TeamConflictError("Team was modified concurrently, reload and try again")
    logger.info("Team %s restored", team.id)
    return await get_team(db, team.id)  # type: ignore[return-value]


# --- Slot operations ---


async def _require_active_user(db: AsyncSession, user_id: uuid.UUID, message: str) -> User:
    user = await get_user_by_id(db, user_id)
    if not user or not user.is_active:
        raise ValueError(message)
    return user


def _require_unattached(user: User, team: Team) -> None:
    # A user works in one team at a time
    if user.team_id is not None and user.team_id != team.id:
        raise ValueError("User already belongs to another team")


def _detach_leader(user: User, team: Team) -> None:
    if user.role == UserRole.TEAM_LEADER:
        user.role = UserRole.MEMBER
    if user.team_id == team.id:
        user.team_id = None


async def _apply_operation(
    db: AsyncSession, team: Team, operation: SlotOperation, actor_id: uuid.UUID, now: datetime
) -> tuple[uuid.UUID | None, uuid.UUID | None]:
    """Validate and apply one operation to ``team`` and the affected users.

    All reads happen before the first mutation, so a rejected operation
    leaves nothing pending in the session.
    """
    match operation:
        case AssignLeader(user_id=user_id):
            user = await _require_active_user(db, user_id, "Invalid user for leader assignment")
            _require_unattached(user, team)
            outgoing_id = get_current_leader(team)
            outgoing = None
            if outgoing_id and outgoing_id != user_id:
                outgoing = await get_user_by_id(db, outgoing_id)
            if is_team_member(team, user_id):
                # Promotion closes the member interval and vacates that slot
                remove_member(team, user_id, actor_id, now)
            assign_leader(team, user_id, actor_id, now)
            if outgoing:
                _detach_leader(outgoing, team)
            user.team_id = team.id
            user.role = UserRole.TEAM_LEADER
            return user_id, None

        case RemoveLeader():
            outgoing_id = get_current_leader(team)
            outgoing = await get_user_by_id(db, outgoing_id) if outgoing_id else None
            remove_leader(team, actor_id, now)
            if outgoing:
                _detach_leader(outgoing, team)
            return outgoing_id, None

        case AddMember(user_id=user_id):
            user = await _require_active_user(db, user_id, "Invalid user for member addition")
            if belongs_to_team(team, user_id):
                raise ValueError("User is already a team member")
            _require_unattached(user, team)
            slot_id = add_member(team, user_id, actor_id, now)
            user.team_id = team.id
            return user_id, slot_id

        case RemoveMember(user_id=user_id):
            if not is_team_member(team, user_id):
                raise ValueError("User is not a team member")
            user = await get_user_by_id(db, user_id)
            slot = find_member_slot(team, user_id)
            still_leader = is_team_leader(team, user_id)
            remove_member(team, user_id, actor_id, now)
            if user and user.team_id == team.id and not still_leader:
                user.team_id = None
            return user_id, slot.id if slot else None

    raise ValueError(f"Unsupported operation: {operation!r}")


async def apply_slot_operation(
    db: AsyncSession, team: Team, operation: SlotOperation, actor: User
) -> SlotOperationOut:
    """Run one slot operation as a load-mutate-save unit of work.

    The team row carries a version counter; when another request saved the
    team after we loaded it, the commit fails with ``StaleDataError`` and the
    operation is replayed against a fresh copy.
    """
    if not team.is_active:
        raise ValueError("Team is deleted")

    team_id = team.id
    actor_id = actor.id
    attempts = max(1, settings.slot_operation_max_retries)
    for attempt in range(1, attempts + 1):
        now = datetime.now(timezone.utc)
        user_id, slot_id = await _apply_operation(db, team, operation, actor_id, now)
        # Bumps version_id even when only slot rows changed
        team.updated_at = now
        try:
            await db.commit()
        except StaleDataError:
            await db.rollback()
            logger.warning(
                "Team %s changed during %s (attempt %d/%d)",
                team_id,
                operation.operation,
                attempt,
                attempts,
            )
            team = await get_team(db, team_id, refresh=True)
            if team is None or not team.is_active:
                raise ValueError("Team is deleted")
            continue

        logger.info(
            "Slot operation %s on team %s by %s (user=%s, slot=%s)",
            operation.operation,
            team_id,
            actor_id,
            user_id,
            slot_id,
        )
        teams = await build_team_outs(db, [team])
        return SlotOperationOut(
            team_id=team.id,
            operation=operation.operation,
            user_id=user_id,
            slot_id=slot_id,
            team=teams[0],
        )

    logger.error("Giving up on %s for team %s after %d attempts", operation.operation, team_id, attempts)
    raise TeamConflictError("Team was modified concurrently, please retry")


# --- Team leader view ---


async def get_led_team(db: AsyncSession, leader_id: uuid.UUID) -> Team | None:
    result = await db.execute(
        _team_query()
        .join(LeaderSlot, LeaderSlot.team_id == Team.id)
        .where(LeaderSlot.current_holder_id == leader_id, Team.is_active.is_(True))
    )
    return result.scalars().first()


async def get_led_team_members(db: AsyncSession, team: Team) -> LedTeamMembersOut:
    now = datetime.now(timezone.utc)
    member_ids = get_current_members(team)
    users = await get_users_by_ids(db, member_ids)

    members: list[LedMemberOut] = []
    for member_id in member_ids:
        user = users.get(member_id)
        if user is None or not user.is_active:
            continue
        slot = find_member_slot(team, member_id)
        history = get_member_slot_history(team, slot.id) if slot else []
        current = next((entry for entry in history if entry.is_current), None)
        join_date = current.assigned_at if current else user.created_at
        members.append(
            LedMemberOut(
                id=user.id,
                username=user.username,
                first_name=user.first_name,
                last_name=user.last_name,
                role=user.role,
                email=user.email,
                slot_id=slot.id if slot else None,
                assignment_history=history,
                join_date=join_date,
                tenure_days=(now - as_utc(join_date)).days,
                total_assignments=len(history),
            )
        )

    return LedTeamMembersOut(
        team=LedTeamOut(id=team.id, name=team.name, member_count=len(members)),
        members=members,
    )
