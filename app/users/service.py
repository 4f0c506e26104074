import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.teams.models import LeaderAssignment, MemberAssignment, MemberSlot, Team
from app.users.history import build_user_history
from app.users.models import User
from app.users.schemas import UserCreate, UserHistoryOut, UserUpdate


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    user = User(
        username=data.username,
        email=data.email,
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_users_by_ids(db: AsyncSession, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
    if not user_ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    return {user.id: user for user in result.scalars().all()}


async def list_users(db: AsyncSession, skip: int = 0, limit: int = 50) -> list[User]:
    result = await db.execute(
        select(User).order_by(User.created_at.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all())


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> User:
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


async def list_teams_touching_user(db: AsyncSession, user_id: uuid.UUID) -> list[Team]:
    """Teams (deleted ones included) where the user ever held a slot."""
    led = select(LeaderAssignment.team_id).where(LeaderAssignment.user_id == user_id)
    joined = (
        select(MemberSlot.team_id)
        .join(MemberAssignment, MemberAssignment.slot_id == MemberSlot.id)
        .where(MemberAssignment.user_id == user_id)
    )
    result = await db.execute(
        select(Team)
        .where(
            or_(
                Team.id.in_(led),
                Team.id.in_(joined),
                Team.team_leader_id == user_id,
            )
        )
        .order_by(Team.created_at)
    )
    return list(result.scalars().all())


async def get_user_history(db: AsyncSession, user: User) -> UserHistoryOut:
    teams = await list_teams_touching_user(db, user.id)
    return build_user_history(user, teams, datetime.now(timezone.utc))
