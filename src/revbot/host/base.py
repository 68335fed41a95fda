"""Capability surface the bots consume from a hosting platform.

Concrete adapters (GitHub, GitLab, ...) live outside this package. They are
expected to translate network failures into
:class:`revbot.errors.TransientHostError` so the scheduler can retry the work
item; retries and rate limiting for individual requests are their concern.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True, slots=True)
class HostUser:
    """Account on the hosting platform; identity is ``(id, username)``."""

    id: str
    username: str
    full_name: str = field(default="", compare=False)


@dataclass(frozen=True, slots=True)
class Comment:
    """Top-level comment attached to a change request."""

    id: str
    author: HostUser
    body: str
    created_at: datetime
    updated_at: datetime


class ReviewVerdict(str, Enum):
    """Outcome recorded by a review."""

    APPROVED = "APPROVED"
    DISAPPROVED = "DISAPPROVED"
    NONE = "NONE"


@dataclass(frozen=True, slots=True)
class Review:
    """Review submitted against a specific commit."""

    reviewer: HostUser
    hash: str
    verdict: ReviewVerdict


class PullRequestState(str, Enum):
    """Open/closed state of a change request."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


@runtime_checkable
class PullRequest(Protocol):
    """Change request as seen through the hosting platform."""

    @property
    def id(self) -> str: ...

    @property
    def repository(self) -> "HostedRepository": ...

    @property
    def author(self) -> HostUser: ...

    @property
    def title(self) -> str: ...

    @property
    def source_ref(self) -> str: ...

    @property
    def target_ref(self) -> str: ...

    def comments(self) -> List[Comment]: ...

    def add_comment(self, body: str) -> Comment: ...

    def update_comment(self, comment_id: str, body: str) -> Comment: ...

    def labels(self) -> List[str]: ...

    def add_label(self, label: str) -> None: ...

    def remove_label(self, label: str) -> None: ...

    def reviews(self) -> List[Review]: ...

    def head_hash(self) -> str: ...

    def target_hash(self) -> str: ...

    def changed_files(self) -> List[str]: ...

    def assignees(self) -> List[HostUser]: ...

    def set_body(self, body: str) -> None: ...

    def set_state(self, state: PullRequestState) -> None: ...


@runtime_checkable
class HostedRepository(Protocol):
    """Repository on the hosting platform that owns change requests."""

    @property
    def name(self) -> str: ...

    @property
    def url(self) -> str: ...

    @property
    def web_url(self) -> str: ...

    def current_user(self) -> HostUser: ...

    def pull_requests(self) -> Sequence[PullRequest]: ...


__all__ = [
    "Comment",
    "HostUser",
    "HostedRepository",
    "PullRequest",
    "PullRequestState",
    "Review",
    "ReviewVerdict",
]
