"""
Webhook Application Layer
=========================

Event models, signature verification and dispatch.
"""

from otto.webhook.application.dto import (
    EVENT_MODELS,
    GitHubComment,
    GitHubIssue,
    GitHubLabel,
    GitHubPullRequest,
    GitHubRepository,
    GitHubUser,
    IssueCommentEvent,
    IssuesEvent,
    PingEvent,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
    parse_event,
)
from otto.webhook.application.services import (
    EventDispatcher,
    compute_signature,
    verify_signature,
)

__all__ = [
    "EVENT_MODELS",
    "GitHubComment",
    "GitHubIssue",
    "GitHubLabel",
    "GitHubPullRequest",
    "GitHubRepository",
    "GitHubUser",
    "IssueCommentEvent",
    "IssuesEvent",
    "PingEvent",
    "PullRequestEvent",
    "PullRequestReviewCommentEvent",
    "parse_event",
    "EventDispatcher",
    "compute_signature",
    "verify_signature",
]
