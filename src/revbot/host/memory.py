"""In-memory hosting platform used for offline runs and tests."""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from .base import Comment, HostUser, PullRequest, PullRequestState, Review

Clock = Callable[[], datetime]


def _ticking_clock(start: datetime | None = None) -> Clock:
    """Return a clock that advances one second per call so ordering is stable."""
    origin = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = itertools.count()
    lock = threading.Lock()

    def _now() -> datetime:
        with lock:
            return origin + timedelta(seconds=next(counter))

    return _now


class InMemoryPullRequest:
    """Thread-safe change request whose state lives in process memory."""

    def __init__(
        self,
        repository: "InMemoryRepository",
        pr_id: str,
        *,
        author: HostUser,
        title: str,
        head_hash: str,
        target_hash: str,
        source_ref: str = "feature",
        target_ref: str = "master",
        changed_files: Sequence[str] = (),
    ) -> None:
        self._repository = repository
        self._id = pr_id
        self._author = author
        self._title = title
        self._head_hash = head_hash
        self._target_hash = target_hash
        self._source_ref = source_ref
        self._target_ref = target_ref
        self._changed_files = list(changed_files)
        self._comments: List[Comment] = []
        self._labels: List[str] = []
        self._reviews: List[Review] = []
        self._assignees: List[HostUser] = []
        self._body = ""
        self._state = PullRequestState.OPEN
        self._lock = threading.RLock()

    # ---------------------------------------------------------------- identity
    @property
    def id(self) -> str:
        return self._id

    @property
    def repository(self) -> "InMemoryRepository":
        return self._repository

    @property
    def author(self) -> HostUser:
        return self._author

    @property
    def title(self) -> str:
        return self._title

    @property
    def source_ref(self) -> str:
        return self._source_ref

    @property
    def target_ref(self) -> str:
        return self._target_ref

    @property
    def body(self) -> str:
        with self._lock:
            return self._body

    @property
    def state(self) -> PullRequestState:
        with self._lock:
            return self._state

    # ---------------------------------------------------------------- comments
    def comments(self) -> List[Comment]:
        with self._lock:
            return list(self._comments)

    def add_comment(self, body: str) -> Comment:
        return self.add_comment_as(self._repository.current_user(), body)

    def add_comment_as(self, author: HostUser, body: str) -> Comment:
        """Post ``body`` as ``author`` (used to simulate human participants)."""
        with self._lock:
            now = self._repository.now()
            comment = Comment(
                id=self._repository.next_comment_id(),
                author=author,
                body=body,
                created_at=now,
                updated_at=now,
            )
            self._comments.append(comment)
            return comment

    def update_comment(self, comment_id: str, body: str) -> Comment:
        with self._lock:
            for index, existing in enumerate(self._comments):
                if existing.id == comment_id:
                    updated = Comment(
                        id=existing.id,
                        author=existing.author,
                        body=body,
                        created_at=existing.created_at,
                        updated_at=self._repository.now(),
                    )
                    self._comments[index] = updated
                    return updated
        raise KeyError(f"Unknown comment id: {comment_id}")

    def delete_comment(self, comment_id: str) -> None:
        with self._lock:
            self._comments = [comment for comment in self._comments if comment.id != comment_id]

    # ------------------------------------------------------------------ labels
    def labels(self) -> List[str]:
        with self._lock:
            return sorted(self._labels)

    def add_label(self, label: str) -> None:
        with self._lock:
            if label not in self._labels:
                self._labels.append(label)

    def remove_label(self, label: str) -> None:
        with self._lock:
            if label in self._labels:
                self._labels.remove(label)

    # ------------------------------------------------------------------ review
    def reviews(self) -> List[Review]:
        with self._lock:
            return list(self._reviews)

    def add_review(self, review: Review) -> None:
        with self._lock:
            self._reviews.append(review)

    def head_hash(self) -> str:
        with self._lock:
            return self._head_hash

    def set_head_hash(self, value: str) -> None:
        with self._lock:
            self._head_hash = value

    def target_hash(self) -> str:
        with self._lock:
            return self._target_hash

    def changed_files(self) -> List[str]:
        with self._lock:
            return list(self._changed_files)

    def set_changed_files(self, paths: Sequence[str]) -> None:
        with self._lock:
            self._changed_files = list(paths)

    # ---------------------------------------------------------------- metadata
    def assignees(self) -> List[HostUser]:
        with self._lock:
            return list(self._assignees)

    def set_assignees(self, users: Sequence[HostUser]) -> None:
        with self._lock:
            self._assignees = list(users)

    def set_body(self, body: str) -> None:
        with self._lock:
            self._body = body

    def set_state(self, state: PullRequestState) -> None:
        with self._lock:
            self._state = state

    def __repr__(self) -> str:
        return f"InMemoryPullRequest({self._repository.name}#{self._id})"


class InMemoryRepository:
    """Repository holding :class:`InMemoryPullRequest` objects."""

    def __init__(
        self,
        name: str,
        *,
        bot_user: HostUser | None = None,
        url: str | None = None,
        web_url: str | None = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._name = name
        self._bot_user = bot_user or HostUser(id="0", username="revbot", full_name="Review Bot")
        self._url = url or f"https://git.example.com/{name}.git"
        self._web_url = web_url or f"https://git.example.com/{name}"
        self._clock = clock or _ticking_clock()
        self._pull_requests: Dict[str, InMemoryPullRequest] = {}
        self._comment_ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    @property
    def web_url(self) -> str:
        return self._web_url

    def current_user(self) -> HostUser:
        return self._bot_user

    def now(self) -> datetime:
        return self._clock()

    def next_comment_id(self) -> str:
        with self._lock:
            return str(next(self._comment_ids))

    def create_pull_request(
        self,
        pr_id: str,
        *,
        author: HostUser,
        title: str = "Change request",
        head_hash: str = "1" * 40,
        target_hash: str = "0" * 40,
        **kwargs,
    ) -> InMemoryPullRequest:
        pr = InMemoryPullRequest(
            self,
            pr_id,
            author=author,
            title=title,
            head_hash=head_hash,
            target_hash=target_hash,
            **kwargs,
        )
        with self._lock:
            self._pull_requests[pr_id] = pr
        return pr

    def pull_requests(self) -> Sequence[PullRequest]:
        with self._lock:
            return [
                pr for pr in self._pull_requests.values() if pr.state == PullRequestState.OPEN
            ]


__all__ = ["InMemoryPullRequest", "InMemoryRepository"]
