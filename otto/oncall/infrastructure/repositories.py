"""
OnCall Infrastructure Repositories
==================================

Concrete repository implementations using SQLAlchemy.

A single generic repository provides CRUD for every entity; the on-call
repository composes one instance per entity type and adds the lookups
and the current-assignment invariant on top.
"""

from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import (
    Any,
    AsyncIterator,
    Callable,
    ContextManager,
    Dict,
    Generic,
    Iterator,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
)
from uuid import uuid4

from sqlalchemy import case, inspect, select, true, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otto.config import EscalationStatus
from otto.core import (
    ConstraintViolationException,
    RepositoryException,
    ResourceNotFoundException,
)
from otto.infrastructure.database import Base
from otto.oncall.application.services import IOnCallRepository
from otto.oncall.domain import Assignment, Escalation, HasID, Rotation, User, utcnow
from otto.oncall.infrastructure.models import (
    AssignmentModel,
    EscalationModel,
    ONCALL_TABLES,
    RotationModel,
    UserModel,
)
from otto.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=HasID)
M = TypeVar("M", bound=Base)


@contextmanager
def _translate_errors(operation: str, entity: str, entity_id: Optional[str] = None) -> Iterator[None]:
    """Re-raise SQLAlchemy errors as repository exceptions carrying operation context."""
    try:
        yield
    except IntegrityError as e:
        raise ConstraintViolationException(
            f"Constraint violated during {operation} of {entity}",
            operation=operation,
            entity=entity,
            entity_id=entity_id,
            details={"error": str(e.orig)}
        ) from e
    except SQLAlchemyError as e:
        raise RepositoryException(
            f"Failed to {operation} {entity}",
            operation=operation,
            entity=entity,
            entity_id=entity_id,
            details={"error": str(e)}
        ) from e


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyRepository(Generic[E, M]):
    """
    Generic async CRUD repository for one entity/model pair.

    Args:
        model: ORM model class
        entity_name: Name used in error context
        to_entity: Maps a model row to a domain entity
        to_values: Maps a domain entity to column values (excluding
            id and timestamps)

    Every method takes the session to run in; transaction boundaries
    belong to the caller.
    """

    def __init__(
        self,
        model: Type[M],
        entity_name: str,
        to_entity: Callable[[M], E],
        to_values: Callable[[E], Dict[str, Any]],
    ):
        self._model = model
        self._entity_name = entity_name
        self._to_entity = to_entity
        self._to_values = to_values

    @property
    def model(self) -> Type[M]:
        return self._model

    def _errors(self, operation: str, entity_id: Optional[str] = None) -> ContextManager[None]:
        return _translate_errors(operation, self._entity_name, entity_id)

    async def find_by_id(self, session: AsyncSession, entity_id: str) -> Optional[E]:
        """Get entity by ID, None when absent."""
        with self._errors("find", entity_id):
            model = await session.get(self._model, entity_id)
        return self._to_entity(model) if model is not None else None

    async def find_all(self, session: AsyncSession) -> List[E]:
        with self._errors("find_all"):
            result = await session.execute(
                select(self._model).order_by(self._model.created_at.asc())
            )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def find_by(
        self,
        session: AsyncSession,
        *,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        for_update: bool = False,
        **filters: Any
    ) -> List[E]:
        """
        Find entities whose columns equal the given values.

        With `for_update` the matched rows stay locked until the session's
        transaction ends (SELECT ... FOR UPDATE; ignored by SQLite).

        Example:
            await repo.find_by(session, repository="acme/repo", order_by=[RotationModel.created_at])
        """
        stmt = select(self._model).filter_by(**filters)
        stmt = stmt.order_by(*(order_by or [self._model.created_at.asc()]))
        if limit is not None:
            stmt = stmt.limit(limit)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        with self._errors("find_by"):
            result = await session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def create(self, session: AsyncSession, entity: E) -> E:
        """Insert the entity, assigning id and timestamps when absent."""
        now = utcnow()
        entity.id = entity.id or str(uuid4())
        entity.created_at = entity.created_at or now
        entity.updated_at = now

        model = self._model(
            id=entity.id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            **self._to_values(entity)
        )

        with self._errors("create", entity.id):
            session.add(model)
            await session.flush()
        return entity

    async def update(self, session: AsyncSession, entity: E) -> E:
        """Write every mutable field and refresh updated_at."""
        with self._errors("update", entity.id):
            model = await session.get(self._model, entity.id) if entity.id else None
            if model is None:
                raise ResourceNotFoundException(self._entity_name, entity.id)

            for column, value in self._to_values(entity).items():
                setattr(model, column, value)
            entity.updated_at = utcnow()
            model.updated_at = entity.updated_at
            await session.flush()
        return entity

    async def delete(self, session: AsyncSession, entity_id: str) -> None:
        with self._errors("delete", entity_id):
            model = await session.get(self._model, entity_id)
            if model is None:
                raise ResourceNotFoundException(self._entity_name, entity_id)
            await session.delete(model)
            await session.flush()


# ========== Mappers ==========

def _user_entity(m: UserModel) -> User:
    return User(
        id=m.id,
        github_username=m.github_username,
        name=m.name,
        email=m.email or "",
        is_active=m.is_active,
        created_at=_aware(m.created_at),
        updated_at=_aware(m.updated_at),
    )


def _user_values(e: User) -> Dict[str, Any]:
    return {
        "github_username": e.github_username,
        "name": e.name,
        "email": e.email or "",
        "is_active": e.is_active,
    }


def _rotation_entity(m: RotationModel) -> Rotation:
    return Rotation(
        id=m.id,
        name=m.name,
        description=m.description or "",
        repository=m.repository,
        is_active=m.is_active,
        created_at=_aware(m.created_at),
        updated_at=_aware(m.updated_at),
    )


def _rotation_values(e: Rotation) -> Dict[str, Any]:
    return {
        "name": e.name,
        "description": e.description or "",
        "repository": e.repository,
        "is_active": e.is_active,
    }


def _assignment_entity(m: AssignmentModel) -> Assignment:
    return Assignment(
        id=m.id,
        rotation_id=m.rotation_id,
        user_id=m.user_id,
        start_time=_aware(m.start_time),
        end_time=_aware(m.end_time),
        is_current=m.is_current,
        created_at=_aware(m.created_at),
        updated_at=_aware(m.updated_at),
    )


def _assignment_values(e: Assignment) -> Dict[str, Any]:
    return {
        "rotation_id": e.rotation_id,
        "user_id": e.user_id,
        "start_time": e.start_time,
        "end_time": e.end_time,
        "is_current": e.is_current,
    }


def _escalation_entity(m: EscalationModel) -> Escalation:
    return Escalation(
        id=m.id,
        assignment_id=m.assignment_id,
        issue_number=m.issue_number,
        pr_number=m.pr_number,
        repository=m.repository,
        status=EscalationStatus(m.status),
        escalation_time=_aware(m.escalation_time),
        resolution_time=_aware(m.resolution_time),
        created_at=_aware(m.created_at),
        updated_at=_aware(m.updated_at),
    )


def _escalation_values(e: Escalation) -> Dict[str, Any]:
    return {
        "assignment_id": e.assignment_id,
        "issue_number": e.issue_number,
        "pr_number": e.pr_number,
        "repository": e.repository,
        "status": EscalationStatus(e.status).value,
        "escalation_time": e.escalation_time,
        "resolution_time": e.resolution_time,
    }


# Live escalations sort ahead of resolved ones, then newest first.
_ESCALATION_LOOKUP_ORDER = (
    case((EscalationModel.status == EscalationStatus.RESOLVED.value, 1), else_=0),
    EscalationModel.created_at.desc(),
)


class OnCallRepository(IOnCallRepository):
    """
    SQLAlchemy implementation of the on-call repository.

    Without a bound session every call runs in its own short transaction.
    `transaction()` yields a repository bound to one session so a group of
    calls commits or rolls back together.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        session: Optional[AsyncSession] = None
    ):
        self._session_maker = session_maker
        self._session = session

        self.users: SQLAlchemyRepository[User, UserModel] = SQLAlchemyRepository(
            UserModel, "user", _user_entity, _user_values
        )
        self.rotations: SQLAlchemyRepository[Rotation, RotationModel] = SQLAlchemyRepository(
            RotationModel, "rotation", _rotation_entity, _rotation_values
        )
        self.assignments: SQLAlchemyRepository[Assignment, AssignmentModel] = SQLAlchemyRepository(
            AssignmentModel, "assignment", _assignment_entity, _assignment_values
        )
        self.escalations: SQLAlchemyRepository[Escalation, EscalationModel] = SQLAlchemyRepository(
            EscalationModel, "escalation", _escalation_entity, _escalation_values
        )

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            return

        async with self._session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

            try:
                with _translate_errors("commit", "transaction"):
                    await session.commit()
            except RepositoryException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["OnCallRepository"]:
        """
        Group several calls into one transaction.

        Usage:
            async with repository.transaction() as tx:
                user = await tx.create_user(user)
                await tx.create_assignment(Assignment(..., is_current=True))

        Nested calls join the outer transaction.
        """
        if self._session is not None:
            yield self
            return

        async with self._scope() as session:
            yield OnCallRepository(self._session_maker, session)

    # ========== Schema ==========

    async def ensure_schema(self) -> None:
        """Create any missing on-call tables."""
        tables = [Base.metadata.tables[name] for name in ONCALL_TABLES]
        async with self._scope() as session:
            with _translate_errors("ensure_schema", "schema"):
                conn = await session.connection()
                await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=tables))
        logger.info("On-call schema ensured", extra={"tables": list(ONCALL_TABLES)})

    async def is_schema_ready(self) -> bool:
        def _check(sync_conn) -> bool:
            inspector = inspect(sync_conn)
            return all(inspector.has_table(name) for name in ONCALL_TABLES)

        async with self._scope() as session:
            with _translate_errors("check_schema", "schema"):
                conn = await session.connection()
                return await conn.run_sync(_check)

    # ========== Users ==========

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        async with self._scope() as session:
            return await self.users.find_by_id(session, user_id)

    async def find_user_by_github_username(self, github_username: str) -> Optional[User]:
        async with self._scope() as session:
            found = await self.users.find_by(session, github_username=github_username, limit=1)
        return found[0] if found else None

    async def find_all_users(self) -> List[User]:
        async with self._scope() as session:
            return await self.users.find_all(session)

    async def create_user(self, user: User) -> User:
        async with self._scope() as session:
            return await self.users.create(session, user)

    async def update_user(self, user: User) -> User:
        async with self._scope() as session:
            return await self.users.update(session, user)

    async def delete_user(self, user_id: str) -> None:
        async with self._scope() as session:
            await self.users.delete(session, user_id)

    # ========== Rotations ==========

    async def find_rotation_by_id(self, rotation_id: str) -> Optional[Rotation]:
        async with self._scope() as session:
            return await self.rotations.find_by_id(session, rotation_id)

    async def find_rotations_by_repository(self, repository: str) -> List[Rotation]:
        """Rotations of a repository, oldest first."""
        async with self._scope() as session:
            return await self.rotations.find_by(session, repository=repository)

    async def find_all_rotations(self) -> List[Rotation]:
        async with self._scope() as session:
            return await self.rotations.find_all(session)

    async def create_rotation(self, rotation: Rotation) -> Rotation:
        async with self._scope() as session:
            return await self.rotations.create(session, rotation)

    async def update_rotation(self, rotation: Rotation) -> Rotation:
        async with self._scope() as session:
            return await self.rotations.update(session, rotation)

    async def delete_rotation(self, rotation_id: str) -> None:
        async with self._scope() as session:
            await self.rotations.delete(session, rotation_id)

    # ========== Assignments ==========

    async def find_assignment_by_id(self, assignment_id: str) -> Optional[Assignment]:
        async with self._scope() as session:
            return await self.assignments.find_by_id(session, assignment_id)

    async def find_current_assignment_by_rotation(self, rotation_id: str) -> Optional[Assignment]:
        async with self._scope() as session:
            found = await self.assignments.find_by(
                session, rotation_id=rotation_id, is_current=True, limit=1
            )
        return found[0] if found else None

    async def find_assignments_by_user(self, user_id: str) -> List[Assignment]:
        async with self._scope() as session:
            return await self.assignments.find_by(session, user_id=user_id)

    async def find_assignments_by_rotation(self, rotation_id: str) -> List[Assignment]:
        async with self._scope() as session:
            return await self.assignments.find_by(session, rotation_id=rotation_id)

    async def _clear_current(
        self,
        session: AsyncSession,
        rotation_id: str,
        keep_id: Optional[str] = None
    ) -> None:
        """Lock the rotation row and drop the current flag from its other assignments."""
        try:
            await session.execute(
                select(RotationModel.id)
                .where(RotationModel.id == rotation_id)
                .with_for_update()
            )

            stmt = (
                update(AssignmentModel)
                .where(AssignmentModel.rotation_id == rotation_id)
                .where(AssignmentModel.is_current == true())
            )
            if keep_id:
                stmt = stmt.where(AssignmentModel.id != keep_id)
            stmt = stmt.values(is_current=False, updated_at=utcnow()).execution_options(
                synchronize_session="fetch"
            )
            await session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Failed to reset current assignments",
                operation="reset_current",
                entity="assignment",
                entity_id=rotation_id,
                details={"error": str(e)}
            ) from e

    async def create_assignment(self, assignment: Assignment) -> Assignment:
        """Insert an assignment; a current one demotes the rotation's others atomically."""
        async with self._scope() as session:
            if assignment.is_current:
                await self._clear_current(session, assignment.rotation_id, assignment.id or None)
            return await self.assignments.create(session, assignment)

    async def update_assignment(self, assignment: Assignment) -> Assignment:
        async with self._scope() as session:
            if assignment.is_current:
                await self._clear_current(session, assignment.rotation_id, assignment.id)
            return await self.assignments.update(session, assignment)

    async def delete_assignment(self, assignment_id: str) -> None:
        async with self._scope() as session:
            await self.assignments.delete(session, assignment_id)

    # ========== Escalations ==========

    async def find_escalation_by_id(self, escalation_id: str, for_update: bool = False) -> Optional[Escalation]:
        async with self._scope() as session:
            if not for_update:
                return await self.escalations.find_by_id(session, escalation_id)
            found = await self.escalations.find_by(session, id=escalation_id, limit=1, for_update=True)
        return found[0] if found else None

    async def find_escalation_by_issue(
        self,
        repository: str,
        issue_number: int,
        for_update: bool = False
    ) -> Optional[Escalation]:
        """
        The live escalation for an issue, else the newest resolved one.

        Pass `for_update` inside `transaction()` before changing the row.
        """
        async with self._scope() as session:
            found = await self.escalations.find_by(
                session,
                repository=repository,
                issue_number=issue_number,
                order_by=_ESCALATION_LOOKUP_ORDER,
                limit=1,
                for_update=for_update
            )
        return found[0] if found else None

    async def find_escalation_by_pr(
        self,
        repository: str,
        pr_number: int,
        for_update: bool = False
    ) -> Optional[Escalation]:
        async with self._scope() as session:
            found = await self.escalations.find_by(
                session,
                repository=repository,
                pr_number=pr_number,
                order_by=_ESCALATION_LOOKUP_ORDER,
                limit=1,
                for_update=for_update
            )
        return found[0] if found else None

    async def find_escalations_by_status(self, status: EscalationStatus) -> List[Escalation]:
        async with self._scope() as session:
            return await self.escalations.find_by(session, status=EscalationStatus(status).value)

    async def find_escalations_by_assignment(self, assignment_id: str) -> List[Escalation]:
        async with self._scope() as session:
            return await self.escalations.find_by(session, assignment_id=assignment_id)

    async def create_escalation(self, escalation: Escalation) -> Escalation:
        async with self._scope() as session:
            return await self.escalations.create(session, escalation)

    async def update_escalation(self, escalation: Escalation) -> Escalation:
        async with self._scope() as session:
            return await self.escalations.update(session, escalation)

    async def delete_escalation(self, escalation_id: str) -> None:
        async with self._scope() as session:
            await self.escalations.delete(session, escalation_id)
