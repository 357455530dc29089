"""
Escalation Sweeper
==================

Periodic job that escalates pending escalations nobody acknowledged in time.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Union

from otto.config import EscalationStatus
from otto.core import ExternalServiceException
from otto.oncall.application.services import INotifier, IOnCallRepository
from otto.oncall.domain import utcnow
from otto.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

AUTO_ESCALATION_MESSAGE = "This {noun} has been automatically escalated due to lack of acknowledgment."


class EscalationSweeper:
    """
    Promotes stale pending escalations to escalated.

    Each escalation is handled in its own transaction, so one failure
    leaves that entry pending for the next run and does not stop the rest.

    Args:
        repository: On-call repository
        notifier: Comment poster
        threshold: How long an escalation may stay pending, or a callable
            returning it (re-read on every sweep so config reloads apply)
    """

    def __init__(
        self,
        repository: IOnCallRepository,
        notifier: INotifier,
        threshold: Union[timedelta, Callable[[], timedelta]] = timedelta(hours=24),
    ):
        self._repository = repository
        self._notifier = notifier
        self._threshold = threshold

    @property
    def threshold(self) -> timedelta:
        return self._threshold() if callable(self._threshold) else self._threshold

    async def sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run one sweep.

        Args:
            now: Evaluation time (defaults to current UTC time)

        Returns:
            Counts of checked, escalated and failed escalations
        """
        now = now or utcnow()
        threshold = self.threshold
        stats = {"checked": 0, "escalated": 0, "failed": 0}

        with log_latency(logger, "escalation_sweep"):
            pending = await self._repository.find_escalations_by_status(EscalationStatus.PENDING)

            for escalation in pending:
                stats["checked"] += 1
                if not escalation.is_stale(threshold, now):
                    continue

                try:
                    if await self._escalate(escalation.id, threshold, now):
                        stats["escalated"] += 1
                except Exception as e:
                    stats["failed"] += 1
                    logger.error(
                        "Failed to auto-escalate",
                        extra={
                            "escalation_id": escalation.id,
                            "repository": escalation.repository,
                            "error": str(e),
                        }
                    )

        logger.info("Escalation sweep finished", extra=stats)
        return stats

    async def _escalate(self, escalation_id: str, threshold: timedelta, now: datetime) -> bool:
        """
        Escalate one entry if it is still pending and stale.

        The pending list is read outside any transaction, so the row is
        re-read under lock here; a command that acknowledged or resolved it
        in the meantime wins.

        Returns:
            True when the escalation was escalated
        """
        async with self._repository.transaction() as tx:
            escalation = await tx.find_escalation_by_id(escalation_id, for_update=True)
            if escalation is None or not escalation.is_stale(threshold, now):
                logger.info(
                    "Escalation changed since sweep started, skipping",
                    extra={
                        "escalation_id": escalation_id,
                        "status": escalation.status.value if escalation else None,
                    }
                )
                return False

            escalation.escalate(now)
            await tx.update_escalation(escalation)

        if not escalation.number:
            return True

        noun = "pull request" if escalation.is_pull_request else "issue"
        try:
            await self._notifier.post_comment(
                escalation.repository,
                escalation.number,
                AUTO_ESCALATION_MESSAGE.format(noun=noun),
            )
        except ExternalServiceException as e:
            logger.error(
                "Failed to post auto-escalation comment",
                extra={"escalation_id": escalation.id, "error": str(e)}
            )
        return True
