"""
Module Base
===========

Contract every feature module implements to receive webhook events.
"""

from abc import ABC, abstractmethod
from typing import Any


class Module(ABC):
    """
    A feature handler receiving every dispatched webhook event.

    Modules decide for themselves which event types and actions they act
    on and ignore the rest.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique module name."""

    @abstractmethod
    async def handle_event(self, event_type: str, event: Any, raw: bytes) -> None:
        """
        Handle one webhook event.

        Args:
            event_type: Value of the X-GitHub-Event header
            event: Parsed event model, or the decoded JSON for unknown types
            raw: Raw request body
        """

    async def initialize(self) -> None:
        """Start background resources. Called once at application startup."""

    async def shutdown(self) -> None:
        """Release background resources. Called once at application shutdown."""
