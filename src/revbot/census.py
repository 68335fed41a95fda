"""Contributor eligibility as seen by command handlers.

Validating a census (who is an author, committer or reviewer of a project) is
someone else's job; the bots only need answers to a few questions. Adapters
resolve a :class:`CensusInstance` from the configured census repository and
reference; :class:`StaticCensus` answers from an in-memory role table.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .host.base import HostUser, PullRequest


class Role(IntEnum):
    """Project roles ordered by privilege."""

    CONTRIBUTOR = 0
    AUTHOR = 1
    COMMITTER = 2
    REVIEWER = 3
    LEAD = 4


class CensusInstance(Protocol):
    """Eligibility answers for one project at one census revision."""

    def role(self, user: HostUser) -> Role: ...

    def full_name(self, user: HostUser) -> Optional[str]: ...

    def email(self, user: HostUser) -> Optional[str]: ...


CensusProvider = Callable[[str, Path, PullRequest], CensusInstance]
"""Resolve ``(census name, scratch path, change request)`` into an instance."""


def is_committer(census: CensusInstance, user: HostUser) -> bool:
    return census.role(user) >= Role.COMMITTER


class CensusMember(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Role = Role.CONTRIBUTOR
    full_name: Optional[str] = None
    email: Optional[str] = None


class StaticCensus(BaseModel):
    """Census backed by a ``username -> member`` table."""

    model_config = ConfigDict(extra="forbid")

    members: dict[str, CensusMember] = Field(default_factory=dict)
    domain: str = "example.com"

    @classmethod
    def from_roles(cls, roles: Mapping[str, Role], **kwargs) -> "StaticCensus":
        return cls(members={user: CensusMember(role=role) for user, role in roles.items()}, **kwargs)

    def _member(self, user: HostUser) -> Optional[CensusMember]:
        return self.members.get(user.username)

    def role(self, user: HostUser) -> Role:
        member = self._member(user)
        return member.role if member else Role.CONTRIBUTOR

    def full_name(self, user: HostUser) -> Optional[str]:
        member = self._member(user)
        if member and member.full_name:
            return member.full_name
        return user.full_name or None

    def email(self, user: HostUser) -> Optional[str]:
        member = self._member(user)
        if member and member.email:
            return member.email
        if member and member.role >= Role.COMMITTER:
            return f"{user.username}@{self.domain}"
        return None

    def provider(self) -> CensusProvider:
        """Return a provider that always resolves to this census."""
        return lambda name, scratch_path, pr: self


__all__ = [
    "CensusInstance",
    "CensusMember",
    "CensusProvider",
    "Role",
    "StaticCensus",
    "is_committer",
]
