"""
OnCall Domain Layer
===================

Domain layer for the on-call module.

Contains:
- Entities: User, Rotation, Assignment, Escalation (with status transitions)
- Commands: Tokenizer for slash commands posted in comments
- Value Objects: OnCallConfig, Target

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from otto.oncall.domain.entities import (
    HasID,
    User,
    Rotation,
    Assignment,
    Escalation,
    TRANSITIONS,
    utcnow,
)
from otto.oncall.domain.commands import (
    Command,
    CommandKind,
    INCIDENT_COMMANDS,
    USAGE_TEXT,
    parse_command,
)
from otto.oncall.domain.value_objects import OnCallConfig, Target

__all__ = [
    # Entities
    "HasID",
    "User",
    "Rotation",
    "Assignment",
    "Escalation",
    "TRANSITIONS",
    "utcnow",
    # Commands
    "Command",
    "CommandKind",
    "INCIDENT_COMMANDS",
    "USAGE_TEXT",
    "parse_command",
    # Value Objects
    "OnCallConfig",
    "Target",
]
