"""Review bot automation: comment markers, a per-change-request scheduler and the bots built on them."""

from .bot import PullRequestBot, create_bots
from .config import RunnerConfig, load_config
from .scheduler import BotRunner, WorkItem

__all__ = [
    "BotRunner",
    "PullRequestBot",
    "RunnerConfig",
    "WorkItem",
    "create_bots",
    "load_config",
]
