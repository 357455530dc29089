"""
OnCall Domain Entities
======================

Pure Python domain entities for on-call rotations and escalations.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Optional, Protocol

from otto.config import EscalationStatus
from otto.core import InvalidTransitionException


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class HasID(Protocol):
    """Anything persisted by the generic repository exposes a string id."""

    id: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass
class User:
    """A person who can be put on call, keyed by their GitHub login."""

    github_username: str
    name: str
    email: str = ""
    is_active: bool = True
    id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Rotation:
    """A named on-call schedule scoped to one repository."""

    name: str
    repository: str
    description: str = ""
    is_active: bool = True
    id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Assignment:
    """
    A time-bounded binding of one user to one rotation.

    At most one assignment per rotation is current; the repository
    enforces that, not this object.
    """

    rotation_id: str
    user_id: str
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    is_current: bool = False
    id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Allowed status moves. ESCALATED -> ESCALATED refreshes the escalation time.
TRANSITIONS: Dict[EscalationStatus, FrozenSet[EscalationStatus]] = {
    EscalationStatus.PENDING: frozenset({
        EscalationStatus.ACKNOWLEDGED,
        EscalationStatus.ESCALATED,
        EscalationStatus.RESOLVED,
    }),
    EscalationStatus.ACKNOWLEDGED: frozenset({
        EscalationStatus.ESCALATED,
        EscalationStatus.RESOLVED,
    }),
    EscalationStatus.ESCALATED: frozenset({
        EscalationStatus.ACKNOWLEDGED,
        EscalationStatus.ESCALATED,
        EscalationStatus.RESOLVED,
    }),
    EscalationStatus.RESOLVED: frozenset(),
}


@dataclass
class Escalation:
    """
    Escalation entity tracking on-call handling of one issue or pull request.

    `issue_number` and `pr_number` use 0 for "not set".
    """

    repository: str
    status: EscalationStatus = EscalationStatus.PENDING
    issue_number: int = 0
    pr_number: int = 0
    assignment_id: Optional[str] = None
    escalation_time: Optional[datetime] = None
    resolution_time: Optional[datetime] = None
    id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = EscalationStatus(self.status)
        if self.issue_number < 0 or self.pr_number < 0:
            raise ValueError("issue_number and pr_number cannot be negative")

    @property
    def is_pull_request(self) -> bool:
        """True when this escalation tracks a pull request rather than an issue."""
        return self.issue_number == 0 and self.pr_number != 0

    @property
    def number(self) -> int:
        """The issue or PR number comments should be posted to."""
        return self.issue_number or self.pr_number

    @property
    def is_live(self) -> bool:
        return self.status != EscalationStatus.RESOLVED

    def can_transition_to(self, target: EscalationStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def _transition(self, target: EscalationStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidTransitionException(self.id, self.status.value, target.value)
        self.status = target

    def acknowledge(self) -> None:
        """Mark the escalation as acknowledged by the on-call user."""
        self._transition(EscalationStatus.ACKNOWLEDGED)

    def escalate(self, timestamp: Optional[datetime] = None) -> None:
        """Escalate (or re-escalate) and stamp the escalation time."""
        self._transition(EscalationStatus.ESCALATED)
        self.escalation_time = timestamp or utcnow()

    def resolve(self, timestamp: Optional[datetime] = None) -> None:
        """Resolve the escalation. Resolved is terminal."""
        self._transition(EscalationStatus.RESOLVED)
        self.resolution_time = timestamp or utcnow()

    def is_stale(self, threshold: timedelta, now: Optional[datetime] = None) -> bool:
        """
        Check if a pending escalation has waited past the threshold.

        Args:
            threshold: timedelta an escalation may stay pending
            now: Evaluation time (defaults to current UTC time)
        """
        if self.status != EscalationStatus.PENDING or self.created_at is None:
            return False
        return self.created_at + threshold <= (now or utcnow())
