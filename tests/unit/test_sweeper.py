from datetime import datetime, timedelta, timezone

import pytest

from otto.config import EscalationStatus
from otto.oncall.application import EscalationSweeper
from otto.oncall.domain import Escalation, Target


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
THRESHOLD = timedelta(hours=24)


async def _pending(repository, number, age):
    return await repository.create_escalation(Escalation(
        repository="acme/repo",
        issue_number=number,
        created_at=NOW - age,
    ))


@pytest.mark.asyncio
async def test_threshold_boundary(repository, notifier):
    fresh = await _pending(repository, 1, THRESHOLD - timedelta(seconds=1))
    stale = await _pending(repository, 2, THRESHOLD + timedelta(seconds=1))
    sweeper = EscalationSweeper(repository, notifier, threshold=THRESHOLD)

    stats = await sweeper.sweep(now=NOW)

    assert stats == {"checked": 2, "escalated": 1, "failed": 0}
    assert (await repository.find_escalation_by_id(fresh.id)).status is EscalationStatus.PENDING

    escalated = await repository.find_escalation_by_id(stale.id)
    assert escalated.status is EscalationStatus.ESCALATED
    assert escalated.escalation_time == NOW
    assert notifier.comments == [
        ("acme/repo", 2, "This issue has been automatically escalated due to lack of acknowledgment.")
    ]


@pytest.mark.asyncio
async def test_pull_request_wording_and_callable_threshold(repository, notifier):
    await repository.create_escalation(Escalation(
        repository="acme/repo",
        pr_number=9,
        created_at=NOW - timedelta(hours=2),
    ))
    sweeper = EscalationSweeper(repository, notifier, threshold=lambda: timedelta(hours=1))

    stats = await sweeper.sweep(now=NOW)

    assert stats["escalated"] == 1
    assert notifier.comments == [
        ("acme/repo", 9, "This pull request has been automatically escalated due to lack of acknowledgment.")
    ]


@pytest.mark.asyncio
async def test_non_pending_escalations_are_left_alone(repository, notifier):
    await repository.create_escalation(Escalation(
        repository="acme/repo",
        issue_number=3,
        status=EscalationStatus.ACKNOWLEDGED,
        created_at=NOW - timedelta(days=3),
    ))
    sweeper = EscalationSweeper(repository, notifier, threshold=THRESHOLD)

    assert await sweeper.sweep(now=NOW) == {"checked": 0, "escalated": 0, "failed": 0}
    assert notifier.comments == []


@pytest.mark.asyncio
async def test_notification_failure_keeps_escalation(repository, failing_notifier):
    stale = await _pending(repository, 4, timedelta(days=2))
    sweeper = EscalationSweeper(repository, failing_notifier, threshold=THRESHOLD)

    stats = await sweeper.sweep(now=NOW)

    assert stats == {"checked": 1, "escalated": 1, "failed": 0}
    assert (await repository.find_escalation_by_id(stale.id)).status is EscalationStatus.ESCALATED


@pytest.mark.asyncio
async def test_failed_entry_stays_pending_and_sweep_continues(repository, notifier, monkeypatch):
    broken = await _pending(repository, 5, timedelta(days=2))
    healthy = await _pending(repository, 6, timedelta(days=2))
    original_update = type(repository).update_escalation

    async def flaky_update(self, escalation):
        if escalation.id == broken.id:
            raise RuntimeError("disk full")
        return await original_update(self, escalation)

    monkeypatch.setattr(type(repository), "update_escalation", flaky_update)
    sweeper = EscalationSweeper(repository, notifier, threshold=THRESHOLD)

    stats = await sweeper.sweep(now=NOW)

    assert stats == {"checked": 2, "escalated": 1, "failed": 1}
    assert (await repository.find_escalation_by_id(broken.id)).status is EscalationStatus.PENDING
    assert (await repository.find_escalation_by_id(healthy.id)).status is EscalationStatus.ESCALATED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "command,expected",
    [("acknowledge", EscalationStatus.ACKNOWLEDGED), ("resolve", EscalationStatus.RESOLVED)],
)
async def test_command_landing_mid_sweep_is_not_overwritten(
    repository, notifier, service, monkeypatch, command, expected
):
    stale = await _pending(repository, 7, timedelta(days=2))
    original_find = type(repository).find_escalations_by_status

    async def find_then_user_acts(self, status):
        found = await original_find(self, status)
        await getattr(service, command)(Target("acme/repo", 7), "alice")
        return found

    monkeypatch.setattr(type(repository), "find_escalations_by_status", find_then_user_acts)
    sweeper = EscalationSweeper(repository, notifier, threshold=THRESHOLD)

    stats = await sweeper.sweep(now=NOW)

    assert stats == {"checked": 1, "escalated": 0, "failed": 0}
    assert (await repository.find_escalation_by_id(stale.id)).status is expected
    assert not any("automatically escalated" in body for body in notifier.bodies)
