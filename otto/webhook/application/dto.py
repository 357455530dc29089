"""
Webhook Application DTOs
========================

Pydantic models for the GitHub webhook payloads the gateway understands.

Only the fields the modules read are declared; GitHub sends far more and
the rest is ignored.
"""

import json
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from otto.config import EventType
from otto.core import EventParseException


# ========== Shared payload parts ==========

class GitHubUser(BaseModel):
    login: str
    id: Optional[int] = None


class GitHubLabel(BaseModel):
    name: str


class GitHubRepository(BaseModel):
    """Repository the event belongs to; `full_name` is `owner/name`."""
    full_name: str
    name: Optional[str] = None
    id: Optional[int] = None


class GitHubIssue(BaseModel):
    number: int = Field(..., gt=0)
    title: str = ""
    body: Optional[str] = None
    state: Optional[str] = None
    user: Optional[GitHubUser] = None
    labels: List[GitHubLabel] = Field(default_factory=list)
    pull_request: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Present when the issue is a pull request"
    )

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


class GitHubPullRequest(BaseModel):
    number: int = Field(..., gt=0)
    title: str = ""
    body: Optional[str] = None
    state: Optional[str] = None
    user: Optional[GitHubUser] = None
    labels: List[GitHubLabel] = Field(default_factory=list)


class GitHubComment(BaseModel):
    id: Optional[int] = None
    body: Optional[str] = None
    user: GitHubUser


# ========== Events ==========

class PingEvent(BaseModel):
    """Sent once when a webhook is configured."""
    zen: Optional[str] = None
    hook_id: Optional[int] = None
    repository: Optional[GitHubRepository] = None


class IssuesEvent(BaseModel):
    action: str
    issue: GitHubIssue
    repository: GitHubRepository
    sender: Optional[GitHubUser] = None


class IssueCommentEvent(BaseModel):
    """A comment on an issue, or on a pull request's conversation tab."""
    action: str
    issue: GitHubIssue
    comment: GitHubComment
    repository: GitHubRepository
    sender: Optional[GitHubUser] = None


class PullRequestEvent(BaseModel):
    action: str
    number: Optional[int] = None
    pull_request: GitHubPullRequest
    repository: GitHubRepository
    sender: Optional[GitHubUser] = None


class PullRequestReviewCommentEvent(BaseModel):
    """A comment on a pull request diff."""
    action: str
    comment: GitHubComment
    pull_request: GitHubPullRequest
    repository: GitHubRepository
    sender: Optional[GitHubUser] = None


EVENT_MODELS: Dict[str, Type[BaseModel]] = {
    EventType.PING.value: PingEvent,
    EventType.ISSUES.value: IssuesEvent,
    EventType.ISSUE_COMMENT.value: IssueCommentEvent,
    EventType.PULL_REQUEST.value: PullRequestEvent,
    EventType.PULL_REQUEST_REVIEW_COMMENT.value: PullRequestReviewCommentEvent,
}


def parse_event(event_type: str, body: bytes) -> Any:
    """
    Decode a webhook body.

    Known event types are validated into their model; any other type is
    returned as the decoded JSON.

    Raises:
        EventParseException: Body is not JSON or fails validation
    """
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise EventParseException("Request body is not valid JSON", {"error": str(e)}) from e

    model = EVENT_MODELS.get(event_type)
    if model is None:
        return payload

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise EventParseException(
            f"Invalid {event_type} payload",
            {"event_type": event_type, "errors": e.errors(include_url=False)}
        ) from e
