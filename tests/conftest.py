from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from revbot.census import Role, StaticCensus  # noqa: E402
from revbot.host import HostUser, InMemoryPullRequest, InMemoryRepository  # noqa: E402
from revbot.tools.vcs import GitIdentity  # noqa: E402

ALICE = HostUser(id="1", username="alice", full_name="Alice Author")
CAROL = HostUser(id="2", username="carol", full_name="Carol Committer")
DAVE = HostUser(id="3", username="dave", full_name="Dave Developer")


@dataclass(slots=True)
class RecordingIntegrator:
    """Integrator double that records requests instead of touching git."""

    commit: str = "c" * 40
    calls: List[dict] = field(default_factory=list)

    def integrate(self, pr, hash, message, *, author: GitIdentity, committer: GitIdentity, scratch_path: Path) -> str:
        self.calls.append(
            {
                "pr": pr.id,
                "hash": hash,
                "message": message,
                "author": author,
                "committer": committer,
            }
        )
        return self.commit


@pytest.fixture()
def repository() -> InMemoryRepository:
    return InMemoryRepository("demo")


@pytest.fixture()
def pr(repository: InMemoryRepository) -> InMemoryPullRequest:
    return repository.create_pull_request("7", author=ALICE, title="Add widget support")


@pytest.fixture()
def census() -> StaticCensus:
    return StaticCensus.from_roles({"alice": Role.AUTHOR, "carol": Role.COMMITTER, "dave": Role.CONTRIBUTOR})


@pytest.fixture()
def integrator() -> RecordingIntegrator:
    return RecordingIntegrator()
