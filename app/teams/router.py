import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_role
from app.database import get_db
from app.teams.schemas import (
    LedTeamMembersOut,
    SlotOperationOut,
    SlotOperationRequest,
    TeamCreate,
    TeamDeleteOut,
    TeamDetailOut,
    TeamHistoryOut,
    TeamOut,
    TeamUpdate,
)
from app.teams.service import (
    TeamConflictError,
    TeamInUseError,
    apply_slot_operation,
    build_team_detail,
    build_team_history,
    build_team_outs,
    create_team,
    delete_team,
    get_led_team,
    get_led_team_members,
    get_team,
    list_teams,
    restore_team,
    update_team,
)
from app.users.models import User, UserRole

router = APIRouter()

_TEAM_NOT_FOUND = "Team not found"


@router.get("", response_model=list[TeamOut])
async def list_all_teams(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    teams = await list_teams(db)
    return await build_team_outs(db, teams)


@router.post("", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
async def create_new_team(
    data: TeamCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    try:
        team = await create_team(db, data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    teams = await build_team_outs(db, [team])
    return teams[0]


@router.get("/my-team/members", response_model=LedTeamMembersOut)
async def list_my_team_members(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.TEAM_LEADER)),
):
    team = await get_led_team(db, current_user.id)
    if not team:
        raise HTTPException(status_code=404, detail="No team found for this team leader")
    return await get_led_team_members(db, team)


@router.get("/{team_id}", response_model=TeamDetailOut)
async def get_single_team(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    team = await get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=_TEAM_NOT_FOUND)
    return await build_team_detail(db, team)


@router.patch("/{team_id}", response_model=TeamOut)
async def update_existing_team(
    team_id: uuid.UUID,
    data: TeamUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    team = await get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=_TEAM_NOT_FOUND)
    try:
        team = await update_team(db, team, data)
    except TeamConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    teams = await build_team_outs(db, [team])
    return teams[0]


@router.delete("/{team_id}", response_model=TeamDeleteOut)
async def remove_team(
    team_id: uuid.UUID,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Soft-delete a team. Teams still referenced by users need ``force=true``."""
    team = await get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=_TEAM_NOT_FOUND)
    try:
        return await delete_team(db, team, current_user, force=force)
    except TeamInUseError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "team_name": e.team_name,
                "user_count": e.user_count,
                "can_force_delete": True,
                "warning": "Force deletion will remove the team reference from all users",
            },
        )
    except TeamConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{team_id}/restore", response_model=TeamOut)
async def restore_deleted_team(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    team = await get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=_TEAM_NOT_FOUND)
    try:
        team = await restore_team(db, team)
    except TeamConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    teams = await build_team_outs(db, [team])
    return teams[0]


@router.post("/{team_id}/slots", response_model=SlotOperationOut)
async def run_slot_operation(
    team_id: uuid.UUID,
    payload: SlotOperationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    """Assign/remove the leader or add/remove a member, keeping slot history."""
    team = await get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=_TEAM_NOT_FOUND)
    try:
        return await apply_slot_operation(db, team, payload.root, current_user)
    except TeamConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{team_id}/slots", response_model=TeamHistoryOut)
async def get_slot_history(
    team_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_role(UserRole.ADMIN)),
):
    team = await get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=_TEAM_NOT_FOUND)
    return build_team_history(team)
