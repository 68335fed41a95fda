"""Hosting platform capability surface and the in-memory adapter."""

from .base import (
    Comment,
    HostUser,
    HostedRepository,
    PullRequest,
    PullRequestState,
    Review,
    ReviewVerdict,
)
from .memory import InMemoryPullRequest, InMemoryRepository

__all__ = [
    "Comment",
    "HostUser",
    "HostedRepository",
    "InMemoryPullRequest",
    "InMemoryRepository",
    "PullRequest",
    "PullRequestState",
    "Review",
    "ReviewVerdict",
]
