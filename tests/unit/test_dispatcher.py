import asyncio
import logging

import pytest

from otto.modules import Module, ModuleRegistry
from otto.webhook.application import EventDispatcher


class RecordingModule(Module):
    def __init__(self, name="recorder"):
        self._name = name
        self.events = []

    @property
    def name(self):
        return self._name

    async def handle_event(self, event_type, event, raw):
        self.events.append((event_type, event, raw))


class FailingModule(Module):
    @property
    def name(self):
        return "failing"

    async def handle_event(self, event_type, event, raw):
        raise RuntimeError("handler exploded")


class SlowModule(Module):
    def __init__(self):
        self.release = asyncio.Event()

    @property
    def name(self):
        return "slow"

    async def handle_event(self, event_type, event, raw):
        await self.release.wait()


@pytest.mark.asyncio
async def test_dispatch_reaches_every_module_and_isolates_failures(caplog):
    registry = ModuleRegistry()
    recorder = RecordingModule()
    registry.register(FailingModule())
    registry.register(recorder)
    dispatcher = EventDispatcher(registry)

    with caplog.at_level(logging.ERROR):
        started = dispatcher.dispatch("ping", {"zen": "hi"}, b"{}", delivery_id="delivery-1")
        assert started == 2
        assert await dispatcher.drain(timeout=1) is True

    assert recorder.events == [("ping", {"zen": "hi"}, b"{}")]
    failure = next(r for r in caplog.records if r.getMessage() == "Module failed to handle event")
    assert failure.module_name == "failing"
    assert failure.delivery_id == "delivery-1"
    assert failure.correlation_id == "delivery-1"
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_drain_gives_up_after_timeout():
    registry = ModuleRegistry()
    slow = SlowModule()
    registry.register(slow)
    dispatcher = EventDispatcher(registry)

    dispatcher.dispatch("ping", {}, b"{}")

    assert await dispatcher.drain(timeout=0.01) is False
    slow.release.set()
    assert await dispatcher.drain(timeout=1) is True


@pytest.mark.asyncio
async def test_dispatch_with_no_modules():
    dispatcher = EventDispatcher(ModuleRegistry())

    assert dispatcher.dispatch("ping", {}, b"{}") == 0
    assert await dispatcher.drain() is True
