import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from otto.core import GitHubException
from otto.infrastructure.database import Base, build_session_maker
from otto.oncall.application import INotifier, OnCallService
from otto.oncall.infrastructure import OnCallRepository


class FakeNotifier(INotifier):
    def __init__(self, fail: bool = False):
        self.comments: list[tuple[str, int, str]] = []
        self.fail = fail

    async def post_comment(self, repository: str, number: int, body: str) -> None:
        if self.fail:
            raise GitHubException("comment endpoint unavailable")
        self.comments.append((repository, number, body))

    @property
    def bodies(self) -> list[str]:
        return [body for _, _, body in self.comments]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(engine):
    return OnCallRepository(build_session_maker(engine))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(repository, notifier):
    return OnCallService(repository, notifier)


@pytest.fixture
def failing_notifier():
    return FakeNotifier(fail=True)
