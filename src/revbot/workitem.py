"""Work items scoped to a single change request."""

from __future__ import annotations

from .host.base import PullRequest
from .scheduler import ResourceKey, WorkItem


class PullRequestWorkItem(WorkItem):
    """Base for items that read and write one change request's comment stream.

    The resource key is ``(repository name, change request id)``, so every
    item touching the same change request is serialized by the runner no
    matter its kind.
    """

    def __init__(self, pr: PullRequest) -> None:
        self.pr = pr

    @property
    def resource_key(self) -> ResourceKey:
        return (self.pr.repository.name, self.pr.id)


__all__ = ["PullRequestWorkItem"]
