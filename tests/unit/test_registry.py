import pytest

from otto.modules import Module, ModuleRegistry


class StubModule(Module):
    def __init__(self, name: str, fail_shutdown: bool = False):
        self._name = name
        self.fail_shutdown = fail_shutdown
        self.events = []
        self.initialized = False
        self.stopped = False

    @property
    def name(self) -> str:
        return self._name

    async def handle_event(self, event_type, event, raw):
        self.events.append((event_type, event))

    async def initialize(self):
        self.initialized = True

    async def shutdown(self):
        if self.fail_shutdown:
            raise RuntimeError("stuck")
        self.stopped = True


def test_register_refuses_duplicates():
    registry = ModuleRegistry()
    first = StubModule("oncall")

    assert registry.register(first) is True
    assert registry.register(StubModule("oncall")) is False
    assert registry.list()["oncall"] is first
    assert len(registry) == 1


def test_list_returns_a_copy():
    registry = ModuleRegistry()
    registry.register(StubModule("oncall"))

    snapshot = registry.list()
    snapshot.clear()

    assert "oncall" in registry.list()


@pytest.mark.asyncio
async def test_lifecycle_hooks_run_for_every_module():
    registry = ModuleRegistry()
    healthy = StubModule("a")
    broken = StubModule("b", fail_shutdown=True)
    registry.register(healthy)
    registry.register(broken)

    await registry.initialize_all()
    assert healthy.initialized and broken.initialized

    await registry.shutdown_all()
    assert healthy.stopped
