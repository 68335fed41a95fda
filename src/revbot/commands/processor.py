"""Find unanswered slash commands on a change request and answer them.

A command comment counts as handled once a bot comment carries a
``command reply`` marker naming its id, so a processor that crashes between
two commands simply picks up where it stopped on the next run.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Set

from ..host.base import Comment, HostUser, PullRequest
from ..markers.codec import COMMAND_REPLY, CommandReply
from ..markers.eventlog import chronological
from ..workitem import PullRequestWorkItem
from .handlers import COMMAND_HANDLERS, CommandContext, CommandName, CommandSettings

LOGGER = logging.getLogger(__name__)

COMMAND_PREFIX = "/"


class Resolution(str, Enum):
    BUILTIN = "builtin"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class CommandInvocation:
    """A command found on the first non-blank line of a comment."""

    comment: Comment
    word: str
    args: str

    @property
    def line(self) -> str:
        return f"{COMMAND_PREFIX}{self.word} {self.args}".rstrip()


def parse_command(body: str) -> Optional[tuple[str, str]]:
    """Return ``(word, args)`` when the first non-blank line is a command."""
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith(COMMAND_PREFIX):
            return None
        rest = stripped[len(COMMAND_PREFIX):]
        if not rest or rest[0].isspace():
            return None
        parts = rest.split(None, 1)
        word = parts[0]
        args = parts[1].strip() if len(parts) > 1 else ""
        return word, args
    return None


def handled_command_ids(bot_user: HostUser, comments: Sequence[Comment]) -> Set[str]:
    handled: Set[str] = set()
    for comment in comments:
        if comment.author != bot_user:
            continue
        handled.update(reply.comment_id for reply in COMMAND_REPLY.find_all(comment.body))
    return handled


def pending_commands(bot_user: HostUser, comments: Sequence[Comment]) -> List[CommandInvocation]:
    """Return unanswered command invocations in the order they were written."""
    handled = handled_command_ids(bot_user, comments)
    pending: List[CommandInvocation] = []
    for comment in chronological(comments):
        if comment.author == bot_user or comment.id in handled:
            continue
        parsed = parse_command(comment.body)
        if parsed is None:
            continue
        word, args = parsed
        pending.append(CommandInvocation(comment=comment, word=word, args=args))
    return pending


def resolve(word: str, settings: CommandSettings) -> Resolution:
    if word in {name.value for name in COMMAND_HANDLERS}:
        return Resolution.BUILTIN
    if word in settings.external:
        return Resolution.EXTERNAL
    return Resolution.UNKNOWN


class CommandWorkItem(PullRequestWorkItem):
    """Answer every pending command on one change request, exactly once each."""

    kind = "command"

    def __init__(self, pr: PullRequest, settings: CommandSettings) -> None:
        super().__init__(pr)
        self.settings = settings

    def run(self, scratch_path: Path) -> None:
        bot_user = self.pr.repository.current_user()
        comments = self.pr.comments()
        pending = pending_commands(bot_user, comments)
        if not pending:
            LOGGER.debug("No pending commands for %r", self)
            return

        census = self.settings.census_provider(self.settings.census_name, scratch_path / "census", self.pr)
        context = CommandContext(census=census, bot_user=bot_user, settings=self.settings)
        for invocation in pending:
            reply = self._process(invocation, context, scratch_path, comments)
            if reply is not None:
                comments.append(reply)

    def _process(
        self,
        invocation: CommandInvocation,
        context: CommandContext,
        scratch_path: Path,
        comments: List[Comment],
    ) -> Optional[Comment]:
        resolution = resolve(invocation.word, self.settings)
        LOGGER.info("Processing command %r from %s on %r (%s)", invocation.line, invocation.comment.author.username, self, resolution.value)
        if resolution is Resolution.EXTERNAL:
            return None

        body = io.StringIO()
        body.write(COMMAND_REPLY.encode(CommandReply(comment_id=invocation.comment.id)))
        body.write(f"\n@{invocation.comment.author.username} ")
        if resolution is Resolution.BUILTIN:
            handler = COMMAND_HANDLERS[CommandName(invocation.word)]
            handler.handle(
                self.pr,
                context,
                scratch_path / invocation.word,
                invocation.args,
                invocation.comment,
                comments,
                body,
            )
        else:
            body.write(
                f"Unknown command `{invocation.word}` - for a list of valid commands use `/help`."
            )
        return self.pr.add_comment(body.getvalue())


__all__ = [
    "COMMAND_PREFIX",
    "CommandInvocation",
    "CommandWorkItem",
    "Resolution",
    "handled_command_ids",
    "parse_command",
    "pending_commands",
    "resolve",
]
