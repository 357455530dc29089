"""
OnCall Application Layer
========================

Application services and repository interfaces for the on-call module.
"""

from otto.oncall.application.services import (
    INotifier,
    IOnCallRepository,
    OnCallService,
)
from otto.oncall.application.sweeper import AUTO_ESCALATION_MESSAGE, EscalationSweeper

__all__ = [
    "INotifier",
    "IOnCallRepository",
    "OnCallService",
    "EscalationSweeper",
    "AUTO_ESCALATION_MESSAGE",
]
