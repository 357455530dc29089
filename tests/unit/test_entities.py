from datetime import datetime, timedelta, timezone

import pytest

from otto.config import EscalationStatus
from otto.core import InvalidTransitionException
from otto.oncall.domain import Escalation, OnCallConfig

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_acknowledge_then_escalate_then_resolve():
    escalation = Escalation(repository="acme/repo", issue_number=7)

    escalation.acknowledge()
    assert escalation.status is EscalationStatus.ACKNOWLEDGED

    escalation.escalate(NOW)
    assert escalation.status is EscalationStatus.ESCALATED
    assert escalation.escalation_time == NOW

    escalation.resolve(NOW + timedelta(minutes=5))
    assert escalation.status is EscalationStatus.RESOLVED
    assert escalation.resolution_time == NOW + timedelta(minutes=5)


def test_re_escalation_refreshes_time():
    escalation = Escalation(repository="acme/repo", issue_number=7, status="escalated", escalation_time=NOW)

    escalation.escalate(NOW + timedelta(hours=1))

    assert escalation.escalation_time == NOW + timedelta(hours=1)


def test_acknowledged_cannot_be_acknowledged_again():
    escalation = Escalation(repository="acme/repo", issue_number=7, status=EscalationStatus.ACKNOWLEDGED)

    with pytest.raises(InvalidTransitionException):
        escalation.acknowledge()


@pytest.mark.parametrize("method", ["acknowledge", "escalate", "resolve"])
def test_resolved_is_terminal(method):
    escalation = Escalation(repository="acme/repo", issue_number=7, status=EscalationStatus.RESOLVED)

    with pytest.raises(InvalidTransitionException):
        getattr(escalation, method)()
    assert escalation.status is EscalationStatus.RESOLVED


def test_negative_numbers_rejected():
    with pytest.raises(ValueError):
        Escalation(repository="acme/repo", issue_number=-1)


def test_pull_request_target():
    escalation = Escalation(repository="acme/repo", pr_number=12)

    assert escalation.is_pull_request
    assert escalation.number == 12


def test_is_stale_only_for_pending():
    threshold = timedelta(hours=24)
    old = NOW - timedelta(hours=25)

    assert Escalation(repository="r", issue_number=1, created_at=old).is_stale(threshold, NOW)
    assert not Escalation(repository="r", issue_number=1, created_at=NOW).is_stale(threshold, NOW)
    assert not Escalation(
        repository="r", issue_number=1, created_at=old, status=EscalationStatus.ACKNOWLEDGED
    ).is_stale(threshold, NOW)


def test_config_repository_filter():
    assert OnCallConfig().is_repository_enabled("any/repo")

    config = OnCallConfig(enabled_repositories=["acme/repo", " "])
    assert config.enabled_repositories == ["acme/repo"]
    assert config.is_repository_enabled("acme/repo")
    assert not config.is_repository_enabled("acme/other")


def test_config_page_labels_and_threshold():
    config = OnCallConfig(page_labels=["Incident"], escalation_threshold_hours=2)

    assert config.should_page(["bug", "incident"])
    assert not config.should_page(["bug"])
    assert config.threshold(24) == timedelta(hours=2)
    assert OnCallConfig().threshold(24) == timedelta(hours=24)
