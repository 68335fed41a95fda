"""Squash-and-push integration of a change request into its target branch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from .errors import InvariantViolation
from .host.base import PullRequest, ReviewVerdict
from .tools.vcs import GitIdentity, GitRepository

LOGGER = logging.getLogger(__name__)


class Integrator(Protocol):
    """Turns an approved change request into a commit on its target branch."""

    def integrate(
        self,
        pr: PullRequest,
        hash: str,
        message: str,
        *,
        author: GitIdentity,
        committer: GitIdentity,
        scratch_path: Path,
    ) -> str:
        """Integrate ``hash`` and return the hash of the resulting commit."""


def approving_reviewers(pr: PullRequest, hash: str) -> List[str]:
    """Return usernames whose latest review approves ``hash``."""
    latest = {}
    for review in pr.reviews():
        latest[review.reviewer.username] = review
    return sorted(
        username
        for username, review in latest.items()
        if review.verdict is ReviewVerdict.APPROVED and review.hash == hash
    )


def commit_message(
    pr: PullRequest,
    *,
    summary: Optional[str],
    contributors: Iterable[str],
    reviewers: Iterable[str],
    sponsor: Optional[str] = None,
) -> str:
    """Build the squashed commit message for ``pr``."""
    lines = [pr.title.strip()]
    if summary:
        lines.extend(["", summary.strip()])
    trailers = [f"Co-authored-by: {contributor}" for contributor in contributors]
    reviewer_list = list(reviewers)
    if reviewer_list:
        trailers.append(f"Reviewed-by: {', '.join(reviewer_list)}")
    if sponsor:
        trailers.append(f"Sponsored-by: {sponsor}")
    if trailers:
        lines.append("")
        lines.extend(trailers)
    return "\n".join(lines) + "\n"


class GitIntegrator:
    """Integrate by squashing the source branch onto the target branch with git."""

    def integrate(
        self,
        pr: PullRequest,
        hash: str,
        message: str,
        *,
        author: GitIdentity,
        committer: GitIdentity,
        scratch_path: Path,
    ) -> str:
        url = pr.repository.url
        local = GitRepository.materialize(scratch_path / "integration", url, pr.target_ref)
        fetched = local.fetch(url, pr.source_ref)
        if fetched != hash:
            raise InvariantViolation(
                f"Source branch {pr.source_ref} is at {fetched}, expected {hash}"
            )
        local.squash(fetched)
        commit = local.commit_all(message, author=author, committer=committer)
        if commit is None:
            raise InvariantViolation(f"Change request {pr.id} has no changes to integrate")
        LOGGER.info("Pushing %s to %s for change request %s", commit, pr.target_ref, pr.id)
        local.push(url, pr.target_ref)
        return commit


__all__ = ["GitIntegrator", "Integrator", "approving_reviewers", "commit_message"]
