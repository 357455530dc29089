"""
OnCall Infrastructure Models
============================

SQLAlchemy ORM models for the on-call module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func, true
from sqlalchemy.orm import Mapped, mapped_column

from otto.config import EscalationStatus
from otto.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    """
    Database model for User entity.

    Maps to the 'oncall_users' table.
    """
    __tablename__ = "oncall_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    github_username: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class RotationModel(Base):
    """
    Database model for Rotation entity.

    Maps to the 'oncall_rotations' table.
    """
    __tablename__ = "oncall_rotations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    repository: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class AssignmentModel(Base):
    """
    Database model for Assignment entity.

    Maps to the 'oncall_assignments' table.
    """
    __tablename__ = "oncall_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    rotation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("oncall_rotations.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("oncall_users.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, index=True, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class EscalationModel(Base):
    """
    Database model for Escalation entity.

    Maps to the 'oncall_escalations' table. Issue and PR numbers use 0
    for "not set".
    """
    __tablename__ = "oncall_escalations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    assignment_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("oncall_assignments.id", ondelete="SET NULL"),
        index=True,
        nullable=True
    )
    issue_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repository: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        index=True,
        nullable=False,
        default=EscalationStatus.PENDING.value
    )
    escalation_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


# Rotation names are unique per repository, ignoring case.
Index(
    "uq_oncall_rotations_repository_name",
    RotationModel.repository,
    func.lower(RotationModel.name),
    unique=True,
)

# At most one current assignment per rotation.
_current_assignment = AssignmentModel.is_current == true()
Index(
    "uq_oncall_assignments_current_rotation",
    AssignmentModel.rotation_id,
    unique=True,
    sqlite_where=_current_assignment,
    postgresql_where=_current_assignment,
)

# At most one live escalation per issue and per PR.
_live_issue = (EscalationModel.status != EscalationStatus.RESOLVED.value) & (EscalationModel.issue_number > 0)
_live_pr = (EscalationModel.status != EscalationStatus.RESOLVED.value) & (EscalationModel.pr_number > 0)
Index(
    "uq_oncall_escalations_live_issue",
    EscalationModel.repository,
    EscalationModel.issue_number,
    unique=True,
    sqlite_where=_live_issue,
    postgresql_where=_live_issue,
)
Index(
    "uq_oncall_escalations_live_pr",
    EscalationModel.repository,
    EscalationModel.pr_number,
    unique=True,
    sqlite_where=_live_pr,
    postgresql_where=_live_pr,
)


ONCALL_TABLES = (
    UserModel.__tablename__,
    RotationModel.__tablename__,
    AssignmentModel.__tablename__,
    EscalationModel.__tablename__,
)
