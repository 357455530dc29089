"""
OnCall Infrastructure Layer
===========================

Database models, repositories and runtime integrations for the on-call module.
"""

from otto.oncall.infrastructure.models import (
    AssignmentModel,
    EscalationModel,
    ONCALL_TABLES,
    RotationModel,
    UserModel,
)
from otto.oncall.infrastructure.repositories import OnCallRepository, SQLAlchemyRepository
from otto.oncall.infrastructure.external import EscalationScheduler, OnCallConfigManager

__all__ = [
    "UserModel",
    "RotationModel",
    "AssignmentModel",
    "EscalationModel",
    "ONCALL_TABLES",
    "SQLAlchemyRepository",
    "OnCallRepository",
    "OnCallConfigManager",
    "EscalationScheduler",
]
