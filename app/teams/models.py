import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class _AssignmentColumns:
    """Columns shared by leader and member history entries.

    Only ``unassigned_at`` is ever written after the row is created.
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    unassigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    assigned_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)


class LeaderAssignment(_AssignmentColumns, Base):
    __tablename__ = "leader_assignments"

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("team_leader_slots.team_id", ondelete="CASCADE"), index=True, nullable=False
    )


class MemberAssignment(_AssignmentColumns, Base):
    __tablename__ = "member_assignments"

    slot_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("team_member_slots.id", ondelete="CASCADE"), index=True, nullable=False
    )


class LeaderSlot(Base):
    __tablename__ = "team_leader_slots"

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True
    )
    current_holder_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), index=True)

    history: Mapped[list[LeaderAssignment]] = relationship(
        order_by=LeaderAssignment.position,
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class MemberSlot(Base):
    __tablename__ = "team_member_slots"

    # The slot id; stable for the life of the slot whoever holds it
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="CASCADE"), index=True, nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    current_holder_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), index=True)

    history: Mapped[list[MemberAssignment]] = relationship(
        order_by=MemberAssignment.position,
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    # Leader reference from before slots existed; mirrored from the leader slot
    team_leader_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_by: Mapped[str | None] = mapped_column(String(255))
    original_name: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    leader_slot: Mapped[LeaderSlot | None] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    member_slots: Mapped[list[MemberSlot]] = relationship(
        order_by=MemberSlot.position,
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id, "eager_defaults": True}
