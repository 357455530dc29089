"""
Webhook Application Services
============================

Signature verification and fan-out of verified events to modules.
"""

import asyncio
import hashlib
import hmac
from typing import Any, Optional, Set

from otto.core import SignatureVerificationException
from otto.modules import Module, ModuleRegistry
from otto.shared.infrastructure.logging import get_context_logger, get_logger

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """Header value GitHub would send for this body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> None:
    """
    Check an X-Hub-Signature-256 header against the raw body.

    Raises:
        SignatureVerificationException: Secret unset, header missing or
            malformed, or digest mismatch
    """
    if not secret:
        raise SignatureVerificationException("Webhook secret is not configured")
    if not signature:
        raise SignatureVerificationException("Missing signature header")
    if not signature.startswith(SIGNATURE_PREFIX):
        raise SignatureVerificationException("Unsupported signature format")

    try:
        provided = bytes.fromhex(signature[len(SIGNATURE_PREFIX):])
    except ValueError as e:
        raise SignatureVerificationException("Signature is not hex encoded") from e

    expected = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    if not hmac.compare_digest(expected, provided):
        raise SignatureVerificationException("Signature mismatch")


class EventDispatcher:
    """
    Fire-and-forget delivery of events to every registered module.

    Each module handles the event in its own task. Tasks are tracked only
    so shutdown can wait for them; their failures are logged and never
    reach the HTTP response.
    """

    def __init__(self, registry: ModuleRegistry):
        self._registry = registry
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, event_type: str, event: Any, raw: bytes, delivery_id: Optional[str] = None) -> int:
        """
        Schedule the event on every module.

        Returns:
            Number of handler tasks started
        """
        modules = self._registry.list()
        for module in modules.values():
            task = asyncio.create_task(
                self._run(module, event_type, event, raw, delivery_id),
                name=f"{module.name}:{event_type}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        logger.debug(
            "Event dispatched",
            extra={"event_type": event_type, "delivery_id": delivery_id, "modules": list(modules)}
        )
        return len(modules)

    async def _run(
        self,
        module: Module,
        event_type: str,
        event: Any,
        raw: bytes,
        delivery_id: Optional[str]
    ) -> None:
        log = get_context_logger(__name__, delivery_id)
        try:
            await module.handle_event(event_type, event, raw)
        except Exception as e:
            log.error(
                "Module failed to handle event",
                extra={
                    "module_name": module.name,
                    "event_type": event_type,
                    "delivery_id": delivery_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True
            )

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight handlers.

        Returns:
            True when all finished within the timeout
        """
        if not self._tasks:
            return True

        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("Handlers still running at shutdown", extra={"count": len(still_running)})
            return False
        return True
