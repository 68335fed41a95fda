"""The change-request bot: turns open change requests into work items."""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from .census import CensusProvider
from .checks import BlockerChecker, Checker, CheckWorkItem
from .commands import CommandSettings, CommandWorkItem
from .config import PullRequestBotConfig, RunnerConfig
from .errors import ConfigurationError
from .host.base import HostedRepository, PullRequest
from .integration import GitIntegrator, Integrator
from .labels import LabelerWorkItem, ProcessedMarkers
from .scheduler import WorkItem

LOGGER = logging.getLogger(__name__)


class PullRequestBot:
    """Poll one hosted repository and emit work for each open change request."""

    def __init__(
        self,
        repository: HostedRepository,
        census_provider: CensusProvider,
        config: PullRequestBotConfig,
        *,
        integrator: Optional[Integrator] = None,
        checker: Optional[Checker] = None,
    ) -> None:
        repository_config = config.repositories.get(repository.name)
        if repository_config is None:
            raise ConfigurationError(f"No configuration for repository {repository.name!r}")
        self.repository = repository
        self.config = config
        self.label_patterns = repository_config.label_patterns()
        self.ready_comments = [(entry.user, entry.compiled()) for entry in config.ready.comments]
        self.settings = CommandSettings(
            census_name=repository_config.census,
            census_provider=census_provider,
            integrator=integrator or GitIntegrator(),
            external=config.external,
            blockers=config.blockers,
        )
        self.checker = checker or BlockerChecker(config.blockers)
        self.processed = ProcessedMarkers()

    def is_ready(self, pr: PullRequest) -> bool:
        """Return ``True`` once the configured labels and comments are present."""
        labels = set(pr.labels())
        if any(label not in labels for label in self.config.ready.labels):
            return False
        if not self.ready_comments:
            return True
        comments = pr.comments()
        for user, pattern in self.ready_comments:
            if not any(
                comment.author.username == user and pattern.search(comment.body)
                for comment in comments
            ):
                return False
        return True

    def periodic_items(self) -> List[WorkItem]:
        items: List[WorkItem] = []
        for pr in self.repository.pull_requests():
            items.append(CommandWorkItem(pr, self.settings))
            if self.label_patterns:
                items.append(LabelerWorkItem(pr, self.label_patterns, self.processed))
            if self.is_ready(pr):
                items.append(CheckWorkItem(pr, self.checker))
            else:
                LOGGER.debug("Change request %s in %s is not ready for checks", pr.id, self.repository.name)
        return items

    def __repr__(self) -> str:
        return f"PullRequestBot@{self.repository.name}"


def create_bots(
    config: RunnerConfig,
    repositories: Mapping[str, HostedRepository],
    census_provider: CensusProvider,
    *,
    integrator: Optional[Integrator] = None,
) -> List[PullRequestBot]:
    """Build one :class:`PullRequestBot` per configured repository."""
    bots: List[PullRequestBot] = []
    for bot_name, bot_config in config.bots.items():
        for repository_name in bot_config.repositories:
            repository = repositories.get(repository_name)
            if repository is None:
                raise ConfigurationError(
                    f"Bot {bot_name!r} refers to unknown repository {repository_name!r}"
                )
            bots.append(PullRequestBot(repository, census_provider, bot_config, integrator=integrator))
    LOGGER.info("Configured %d bot(s)", len(bots))
    return bots


__all__ = ["PullRequestBot", "create_bots"]
