"""Startup script: create tables, seed the first admin and upgrade legacy teams."""

import asyncio
import logging

from sqlalchemy import select

from app.config import settings
from app.database import Base, async_session, engine
from app.teams.models import LeaderAssignment, LeaderSlot, Team
from app.users.models import User, UserRole

# Import all models so Base.metadata knows about them
from app.audit.models import AuditLog  # noqa: F401

logger = logging.getLogger(__name__)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created/verified.")


async def seed_admin():
    async with async_session() as db:
        result = await db.execute(select(User).where(User.role == UserRole.ADMIN))
        if result.scalars().first():
            logger.info("Admin already exists, skipping seed.")
            return

        admin = User(
            username=settings.admin_seed_username,
            email=settings.admin_seed_email,
            first_name="System",
            last_name="Admin",
            role=UserRole.ADMIN,
        )
        db.add(admin)
        await db.commit()
        logger.info("Seeded admin: %s", settings.admin_seed_email)


async def migrate_legacy_teams():
    """Give every team a leader slot.

    Teams saved before slots existed only carry ``team_leader_id``; that user
    becomes the holder of a new leader slot with one open interval starting
    at the team's creation.
    """
    async with async_session() as db:
        result = await db.execute(
            select(Team)
            .outerjoin(LeaderSlot, LeaderSlot.team_id == Team.id)
            .where(LeaderSlot.team_id.is_(None))
        )
        teams = list(result.scalars().all())
        if not teams:
            logger.info("No legacy teams to migrate.")
            return

        migrated_leaders = 0
        for team in teams:
            slot = LeaderSlot(history=[])
            if team.team_leader_id:
                slot.current_holder_id = team.team_leader_id
                slot.history.append(
                    LeaderAssignment(
                        user_id=team.team_leader_id,
                        assigned_at=team.created_at,
                        assigned_by=team.created_by or team.team_leader_id,
                    )
                )
                migrated_leaders += 1
            team.leader_slot = slot

        await db.commit()
        logger.info(
            "Migrated %d legacy teams to slots (%d with a leader)", len(teams), migrated_leaders
        )


async def startup():
    await init_db()
    await seed_admin()
    await migrate_legacy_teams()


if __name__ == "__main__":
    asyncio.run(startup())
