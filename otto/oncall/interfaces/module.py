"""
OnCall Module
=============

Routes webhook events to the on-call service and owns the module's
background resources (config watcher, escalation sweeper).
"""

from pathlib import Path
from typing import Any, List, Optional

from otto.config import EventType
from otto.modules import Module
from otto.oncall.application import EscalationSweeper, OnCallService
from otto.oncall.domain import OnCallConfig, Target, parse_command
from otto.oncall.infrastructure.external import EscalationScheduler, OnCallConfigManager
from otto.shared.infrastructure.logging import get_logger
from otto.webhook.application import (
    GitHubLabel,
    IssueCommentEvent,
    IssuesEvent,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
)

logger = get_logger(__name__)


class OnCallModule(Module):
    """
    On-call escalation module.

    Handles:
    - issue_comment/created: every command; PR conversation comments target the PR
    - pull_request_review_comment/created: /ack, /escalate and /resolve on the PR
    - issues/opened and pull_request/opened: pages on-call for configured labels
    """

    def __init__(
        self,
        service: OnCallService,
        config_manager: Optional[OnCallConfigManager] = None,
        config_path: Optional[Path] = None,
        sweeper: Optional[EscalationSweeper] = None,
        scheduler: Optional[EscalationScheduler] = None,
    ):
        self._service = service
        self._config_manager = config_manager or OnCallConfigManager()
        self._config_path = config_path
        self._sweeper = sweeper
        self._scheduler = scheduler

    @property
    def name(self) -> str:
        return "oncall"

    @property
    def config(self) -> OnCallConfig:
        return self._config_manager.config

    async def initialize(self) -> None:
        if self._config_path is not None:
            self._config_manager.load(self._config_path)
            self._config_manager.start_watching()

        if self._sweeper is not None and self._scheduler is not None:
            await self._scheduler.start(self._sweeper.sweep)

    async def shutdown(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        self._config_manager.stop_watching()

    async def handle_event(self, event_type: str, event: Any, raw: bytes) -> None:
        if event_type == EventType.ISSUE_COMMENT and isinstance(event, IssueCommentEvent):
            await self._on_issue_comment(event)
        elif event_type == EventType.PULL_REQUEST_REVIEW_COMMENT and isinstance(event, PullRequestReviewCommentEvent):
            await self._on_review_comment(event)
        elif event_type == EventType.ISSUES and isinstance(event, IssuesEvent):
            await self._on_opened(
                Target(event.repository.full_name, event.issue.number),
                event.action,
                event.issue.labels,
            )
        elif event_type == EventType.PULL_REQUEST and isinstance(event, PullRequestEvent):
            await self._on_opened(
                Target(event.repository.full_name, event.pull_request.number, is_pull_request=True),
                event.action,
                event.pull_request.labels,
            )

    # ========== Event handlers ==========

    async def _on_issue_comment(self, event: IssueCommentEvent) -> None:
        if event.action != "created" or not self._enabled(event.repository.full_name):
            return

        command = parse_command(event.comment.body)
        if command is None:
            return

        target = Target(
            event.repository.full_name,
            event.issue.number,
            is_pull_request=event.issue.is_pull_request,
        )
        await self._service.handle_command(command, target, event.comment.user.login)

    async def _on_review_comment(self, event: PullRequestReviewCommentEvent) -> None:
        if event.action != "created" or not self._enabled(event.repository.full_name):
            return

        command = parse_command(event.comment.body)
        if command is None or not command.is_incident_command:
            return

        target = Target(event.repository.full_name, event.pull_request.number, is_pull_request=True)
        await self._service.handle_command(command, target, event.comment.user.login)

    async def _on_opened(self, target: Target, action: str, labels: List[GitHubLabel]) -> None:
        if action != "opened" or not self._enabled(target.repository):
            return

        label_names = [label.name for label in labels]
        logger.info(
            f"New {target.noun} opened",
            extra={"repository": target.repository, "number": target.number, "labels": label_names}
        )

        if self.config.should_page(label_names):
            await self._service.page(target)

    # ========== Helpers ==========

    def _enabled(self, repository: str) -> bool:
        if self.config.is_repository_enabled(repository):
            return True
        logger.debug("Repository not enabled for on-call", extra={"repository": repository})
        return False

