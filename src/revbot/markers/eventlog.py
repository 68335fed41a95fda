"""Replay markers from comment history as an append-only event log.

The comment stream is the only durable store the bots have, so derived state
(the contributor list, the latest summary, a pending integration request) is
rebuilt on every run by folding the relevant markers, oldest first, with a
pure reducer. Only markers written by the bot itself count; a human copying a
marker into their own comment has no effect.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from ..host.base import Comment, HostUser
from .codec import (
    CONTRIBUTOR,
    INTEGRATION_REQUEST,
    SUMMARY,
    ContributorAction,
    ContributorOp,
    IntegrationRequest,
    MarkerKind,
    Summary,
)

R = TypeVar("R")
S = TypeVar("S")

Reducer = Callable[[S, R], S]


def chronological(comments: Iterable[Comment]) -> List[Comment]:
    """Return ``comments`` sorted by creation time, keeping host order for ties."""
    return sorted(comments, key=lambda comment: comment.created_at)


def events(
    comments: Iterable[Comment],
    kind: MarkerKind[R],
    *,
    author: Optional[HostUser] = None,
) -> List[R]:
    """Decode every ``kind`` marker in chronological order.

    When ``author`` is given, comments written by anyone else are ignored.
    """
    decoded: List[R] = []
    for comment in chronological(comments):
        if author is not None and comment.author != author:
            continue
        decoded.extend(kind.find_all(comment.body))
    return decoded


def replay(
    comments: Iterable[Comment],
    kind: MarkerKind[R],
    reducer: Reducer[S, R],
    initial: S,
    *,
    author: Optional[HostUser] = None,
) -> S:
    """Fold the ``kind`` events found in ``comments`` into a single value."""
    state = initial
    for event in events(comments, kind, author=author):
        state = reducer(state, event)
    return state


# --------------------------------------------------------------- reducers
def contributor_reducer(state: tuple[str, ...], action: ContributorAction) -> tuple[str, ...]:
    """Apply one add/remove action to an insertion-ordered tuple of addresses."""
    if action.op is ContributorOp.ADD:
        if action.address in state:
            return state
        return (*state, action.address)
    return tuple(address for address in state if address != action.address)


def reduce_contributors(actions: Iterable[ContributorAction]) -> List[str]:
    """Return the contributor list produced by ``actions`` applied in order."""
    state: tuple[str, ...] = ()
    for action in actions:
        state = contributor_reducer(state, action)
    return list(state)


def summary_reducer(_: Optional[str], event: Summary) -> Optional[str]:
    return event.text or None


def integration_reducer(_: Optional[str], event: IntegrationRequest) -> Optional[str]:
    return event.hash


# ------------------------------------------------------- derived state views
def contributors(bot_user: HostUser, comments: Sequence[Comment]) -> List[str]:
    """Reconstruct the contributor list recorded on a change request."""
    return list(replay(comments, CONTRIBUTOR, contributor_reducer, (), author=bot_user))


def latest_summary(bot_user: HostUser, comments: Sequence[Comment]) -> Optional[str]:
    """Return the most recent summary set through ``/summary``, if any."""
    return replay(comments, SUMMARY, summary_reducer, None, author=bot_user)


def pending_integration(bot_user: HostUser, comments: Sequence[Comment]) -> Optional[str]:
    """Return the hash of the latest integration request awaiting a sponsor."""
    return replay(comments, INTEGRATION_REQUEST, integration_reducer, None, author=bot_user)


__all__ = [
    "chronological",
    "contributor_reducer",
    "contributors",
    "events",
    "integration_reducer",
    "latest_summary",
    "pending_integration",
    "reduce_contributors",
    "replay",
    "summary_reducer",
]
