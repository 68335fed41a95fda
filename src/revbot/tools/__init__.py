"""Tool integrations used by the bots."""

from .vcs import GitError, GitIdentity, GitRepository

__all__ = [
    "GitError",
    "GitIdentity",
    "GitRepository",
]
