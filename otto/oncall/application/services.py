"""
OnCall Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: OnCallService turns one command into one state change
- Dependency Inversion: Depend on abstractions (repository, notifier), not concrete implementations
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, Awaitable, Callable, Dict, List, Optional, Tuple

from otto.config import DEFAULT_ROTATION_SUFFIX, EscalationStatus
from otto.core import ConstraintViolationException, ExternalServiceException
from otto.oncall.domain import (
    Assignment,
    Command,
    CommandKind,
    Escalation,
    Rotation,
    Target,
    USAGE_TEXT,
    User,
    utcnow,
)
from otto.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Interfaces (Dependency Inversion) ==========

class INotifier(ABC):
    """Posts comments back to the issue or pull request a command came from."""

    @abstractmethod
    async def post_comment(self, repository: str, number: int, body: str) -> None:
        """
        Post a comment.

        Raises:
            ExternalServiceException: If the comment could not be posted
        """


class IOnCallRepository(ABC):
    """Interface for on-call data access."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager["IOnCallRepository"]:
        """Yield a repository whose calls share one transaction."""

    @abstractmethod
    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by internal ID."""

    @abstractmethod
    async def find_user_by_github_username(self, github_username: str) -> Optional[User]:
        """Get user by GitHub login."""

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Create new user."""

    @abstractmethod
    async def find_rotations_by_repository(self, repository: str) -> List[Rotation]:
        """Rotations of a repository, oldest first."""

    @abstractmethod
    async def create_rotation(self, rotation: Rotation) -> Rotation:
        """Create new rotation."""

    @abstractmethod
    async def find_current_assignment_by_rotation(self, rotation_id: str) -> Optional[Assignment]:
        """Get the current assignment of a rotation."""

    @abstractmethod
    async def create_assignment(self, assignment: Assignment) -> Assignment:
        """Create new assignment, demoting others when it is current."""

    @abstractmethod
    async def find_escalation_by_id(self, escalation_id: str, for_update: bool = False) -> Optional[Escalation]:
        """Get escalation by ID; `for_update` locks the row for the current transaction."""

    @abstractmethod
    async def find_escalation_by_issue(
        self,
        repository: str,
        issue_number: int,
        for_update: bool = False
    ) -> Optional[Escalation]:
        """Get the escalation tracking an issue."""

    @abstractmethod
    async def find_escalation_by_pr(
        self,
        repository: str,
        pr_number: int,
        for_update: bool = False
    ) -> Optional[Escalation]:
        """Get the escalation tracking a pull request."""

    @abstractmethod
    async def find_escalations_by_status(self, status: EscalationStatus) -> List[Escalation]:
        """List escalations in one status."""

    @abstractmethod
    async def create_escalation(self, escalation: Escalation) -> Escalation:
        """Create new escalation."""

    @abstractmethod
    async def update_escalation(self, escalation: Escalation) -> Escalation:
        """Persist escalation changes."""


# ========== Application Services ==========

class OnCallService:
    """
    Service executing on-call commands.

    Each command runs in one repository transaction. The resulting comment
    is posted only after commit; a failed post is logged and the state
    change stands. Repository errors propagate to the caller.
    """

    def __init__(self, repository: IOnCallRepository, notifier: INotifier):
        self._repository = repository
        self._notifier = notifier

        self._handlers: Dict[CommandKind, Callable[[Command, Target, str], Awaitable[Optional[str]]]] = {
            CommandKind.ACK: lambda c, t, who: self.acknowledge(t, who),
            CommandKind.ESCALATE: lambda c, t, who: self.escalate(t),
            CommandKind.RESOLVE: lambda c, t, who: self.resolve(t, who),
            CommandKind.ADD_USER: lambda c, t, who: self.add_user(t, c.handle, c.name),
            CommandKind.ADD_ROTATION: lambda c, t, who: self.add_rotation(t, c.name, who),
            CommandKind.ASSIGN_USER: lambda c, t, who: self.assign_user(t, c.handle, c.rotation),
            CommandKind.USAGE: lambda c, t, who: self.usage(t, c.message),
        }

    async def handle_command(self, command: Command, target: Target, commenter: str) -> Optional[str]:
        """
        Execute a parsed command on behalf of a commenter.

        Returns:
            The comment body posted back, or None when nothing was posted
        """
        logger.info(
            "Handling on-call command",
            extra={
                "command": command.kind.value,
                "repository": target.repository,
                "number": target.number,
                "commenter": commenter,
            }
        )
        return await self._handlers[command.kind](command, target, commenter)

    # ========== Incident commands ==========

    async def acknowledge(self, target: Target, handle: str) -> Optional[str]:
        """
        Acknowledge the target's escalation, creating one on first contact.

        A first contact that loses a race to a concurrent delivery (both
        creating the default rotation or the escalation) is retried once
        against the winner's rows.
        """
        try:
            escalation = await self._acknowledge(target, handle)
        except ConstraintViolationException as e:
            logger.warning(
                "Acknowledge collided with a concurrent write, retrying",
                extra={"repository": target.repository, "number": target.number, "error": e.message}
            )
            escalation = await self._acknowledge(target, handle)

        if escalation is None:
            return None

        logger.info(
            "Escalation acknowledged",
            extra={"escalation_id": escalation.id, "handle": handle}
        )
        return await self._notify(target, f"@{handle} has acknowledged this {target.noun}.")

    async def _acknowledge(self, target: Target, handle: str) -> Optional[Escalation]:
        async with self._repository.transaction() as tx:
            escalation = await self._find_live(tx, target)

            if escalation is not None:
                if escalation.status == EscalationStatus.ACKNOWLEDGED:
                    logger.info(
                        "Escalation already acknowledged",
                        extra={"escalation_id": escalation.id, "handle": handle}
                    )
                    return None
                escalation.acknowledge()
                await tx.update_escalation(escalation)
            else:
                user = await self._find_or_create_user(tx, handle)
                rotation = await self._default_rotation(tx, target.repository)
                assignment = await tx.create_assignment(Assignment(
                    rotation_id=rotation.id,
                    user_id=user.id,
                    is_current=True,
                ))
                escalation = await tx.create_escalation(self._new_escalation(
                    target,
                    EscalationStatus.ACKNOWLEDGED,
                    assignment_id=assignment.id,
                ))
        return escalation

    async def escalate(self, target: Target) -> Optional[str]:
        """Escalate the target, or re-escalate a live escalation."""
        async with self._repository.transaction() as tx:
            escalation = await self._find_live(tx, target)

            if escalation is not None:
                escalation.escalate()
                await tx.update_escalation(escalation)
                message = f"This {target.noun} has been re-escalated."
            else:
                on_call = await self._current_on_call(tx, target.repository)
                escalation = await tx.create_escalation(self._new_escalation(
                    target,
                    EscalationStatus.ESCALATED,
                    assignment_id=on_call[0].id if on_call else None,
                    escalation_time=utcnow(),
                ))
                if on_call and on_call[1] is not None:
                    message = f"This {target.noun} has been escalated to @{on_call[1].github_username}."
                else:
                    message = f"This {target.noun} has been marked for escalation."

        logger.info("Escalation escalated", extra={"escalation_id": escalation.id})
        return await self._notify(target, message)

    async def resolve(self, target: Target, handle: str) -> Optional[str]:
        async with self._repository.transaction() as tx:
            escalation = await self._find_live(tx, target)
            if escalation is None:
                logger.info(
                    "No live escalation to resolve",
                    extra={"repository": target.repository, "number": target.number}
                )
                return None

            escalation.resolve()
            await tx.update_escalation(escalation)

        logger.info("Escalation resolved", extra={"escalation_id": escalation.id, "handle": handle})
        return await self._notify(target, f"This {target.noun} has been marked as resolved by @{handle}.")

    # ========== Administration commands ==========

    async def add_user(self, target: Target, handle: str, name: str) -> Optional[str]:
        async with self._repository.transaction() as tx:
            if await tx.find_user_by_github_username(handle) is not None:
                message = f"User @{handle} already exists."
            else:
                await tx.create_user(User(github_username=handle, name=name))
                message = f"User @{handle} has been added to the on-call system."

        return await self._notify(target, message)

    async def add_rotation(self, target: Target, name: str, commenter: str) -> Optional[str]:
        async with self._repository.transaction() as tx:
            existing = self._match_rotation(
                await tx.find_rotations_by_repository(target.repository), name
            )
            if existing is not None:
                message = f"On-call rotation '{existing.name}' already exists for this repository."
            else:
                await tx.create_rotation(Rotation(
                    name=name,
                    repository=target.repository,
                    description=f"Rotation created by @{commenter}",
                ))
                message = f"On-call rotation '{name}' has been created for this repository."

        return await self._notify(target, message)

    async def assign_user(self, target: Target, handle: str, rotation_name: str) -> Optional[str]:
        async with self._repository.transaction() as tx:
            user = await tx.find_user_by_github_username(handle)
            rotation = self._match_rotation(
                await tx.find_rotations_by_repository(target.repository), rotation_name
            )

            if user is None:
                message = f"User @{handle} does not exist. Please add the user first."
            elif rotation is None:
                message = f"Rotation '{rotation_name}' does not exist. Please create it first."
            else:
                await tx.create_assignment(Assignment(
                    rotation_id=rotation.id,
                    user_id=user.id,
                    is_current=True,
                ))
                message = f"@{handle} has been assigned to the '{rotation.name}' on-call rotation."

        return await self._notify(target, message)

    async def usage(self, target: Target, message: Optional[str] = None) -> Optional[str]:
        return await self._notify(target, message or USAGE_TEXT)

    # ========== Paging ==========

    async def page(self, target: Target) -> Optional[str]:
        """
        Open a pending escalation for a newly opened item and page the on-call user.

        Does nothing when the item already has a live escalation.
        """
        async with self._repository.transaction() as tx:
            if await self._find_live(tx, target) is not None:
                return None

            on_call = await self._current_on_call(tx, target.repository)
            escalation = await tx.create_escalation(self._new_escalation(
                target,
                EscalationStatus.PENDING,
                assignment_id=on_call[0].id if on_call else None,
            ))

        logger.info("Pending escalation opened", extra={"escalation_id": escalation.id})

        if on_call and on_call[1] is not None:
            message = (
                f"@{on_call[1].github_username} you are on call for this {target.noun}. "
                "Comment `/ack` to acknowledge."
            )
        else:
            message = f"This {target.noun} needs attention but nobody is on call for this repository."
        return await self._notify(target, message)

    # ========== Helpers ==========

    @staticmethod
    def _new_escalation(target: Target, status: EscalationStatus, **fields) -> Escalation:
        if target.is_pull_request:
            return Escalation(repository=target.repository, pr_number=target.number, status=status, **fields)
        return Escalation(repository=target.repository, issue_number=target.number, status=status, **fields)

    @staticmethod
    async def _find_live(tx: IOnCallRepository, target: Target) -> Optional[Escalation]:
        """
        Newest escalation for the target, locked for the caller's transaction.

        A resolved one counts as absent.
        """
        if target.is_pull_request:
            escalation = await tx.find_escalation_by_pr(target.repository, target.number, for_update=True)
        else:
            escalation = await tx.find_escalation_by_issue(target.repository, target.number, for_update=True)

        if escalation is None or not escalation.is_live:
            return None
        return escalation

    @staticmethod
    def _match_rotation(rotations: List[Rotation], name: str) -> Optional[Rotation]:
        wanted = name.strip().lower()
        for rotation in rotations:
            if rotation.name.lower() == wanted:
                return rotation
        return None

    @staticmethod
    async def _find_or_create_user(tx: IOnCallRepository, handle: str) -> User:
        user = await tx.find_user_by_github_username(handle)
        if user is None:
            user = await tx.create_user(User(github_username=handle, name=handle))
            logger.info("User auto-created", extra={"handle": handle, "user_id": user.id})
        return user

    @staticmethod
    async def _default_rotation(tx: IOnCallRepository, repository: str) -> Rotation:
        """The repository's oldest rotation, created on first use."""
        rotations = await tx.find_rotations_by_repository(repository)
        if rotations:
            return rotations[0]

        rotation = await tx.create_rotation(Rotation(
            name=f"{repository} {DEFAULT_ROTATION_SUFFIX}",
            repository=repository,
            description="Default rotation created automatically",
        ))
        logger.info("Default rotation created", extra={"repository": repository, "rotation_id": rotation.id})
        return rotation

    @staticmethod
    async def _current_on_call(
        tx: IOnCallRepository,
        repository: str
    ) -> Optional[Tuple[Assignment, Optional[User]]]:
        """Current assignment of the repository's first rotation and its user."""
        rotations = await tx.find_rotations_by_repository(repository)
        if not rotations:
            return None

        assignment = await tx.find_current_assignment_by_rotation(rotations[0].id)
        if assignment is None:
            return None
        return assignment, await tx.find_user_by_id(assignment.user_id)

    async def _notify(self, target: Target, body: str) -> str:
        try:
            await self._notifier.post_comment(target.repository, target.number, body)
        except ExternalServiceException as e:
            logger.error(
                "Failed to post comment",
                extra={
                    "repository": target.repository,
                    "number": target.number,
                    "error": str(e),
                }
            )
        return body
