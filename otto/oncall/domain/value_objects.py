"""
OnCall Value Objects
====================

Immutable value objects for the on-call domain.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class OnCallConfig(BaseModel):
    """
    On-call module configuration loaded from YAML.

    This is a value object - replaced wholesale on reload, never mutated.
    """
    enabled_repositories: List[str] = Field(
        default_factory=list,
        description="Repositories (owner/name) the module acts on; empty means all"
    )
    page_labels: List[str] = Field(
        default_factory=list,
        description="Labels that open a pending escalation when an issue or PR is opened"
    )
    escalation_threshold_hours: Optional[float] = Field(
        default=None,
        gt=0,
        description="Overrides the global pending-escalation threshold"
    )

    @field_validator("enabled_repositories", "page_labels")
    @classmethod
    def strip_blanks(cls, v: List[str]) -> List[str]:
        """Drop empty entries left behind by YAML lists."""
        return [item.strip() for item in v if item and item.strip()]

    def is_repository_enabled(self, repository: str) -> bool:
        if not self.enabled_repositories:
            return True
        return repository in self.enabled_repositories

    def should_page(self, labels: List[str]) -> bool:
        """True when any of the item's labels is configured to page on-call."""
        wanted = {label.lower() for label in self.page_labels}
        return any(label.lower() in wanted for label in labels)

    def threshold(self, default_hours: float) -> timedelta:
        return timedelta(hours=self.escalation_threshold_hours or default_hours)


@dataclass(frozen=True)
class Target:
    """The issue or pull request a command or event refers to."""
    repository: str
    number: int
    is_pull_request: bool = False

    @property
    def noun(self) -> str:
        return "pull request" if self.is_pull_request else "issue"
