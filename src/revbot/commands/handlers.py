"""Built-in commands available to change request participants.

Handlers write their reply into a text buffer; the processor adds the
correlation marker and posts the result. Any state a handler wants to persist
is written as a marker into that same reply.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, TextIO

from ..census import CensusInstance, CensusProvider, is_committer
from ..checks import CheckStore
from ..errors import InvariantViolation, TransientHostError
from ..host.base import Comment, HostUser, PullRequest, PullRequestState
from ..integration import Integrator, approving_reviewers, commit_message
from ..markers import eventlog
from ..markers.codec import (
    CONTRIBUTOR,
    INTEGRATION_REQUEST,
    SUMMARY,
    CheckStatus,
    ContributorAction,
    ContributorOp,
    IntegrationRequest,
    Summary,
)
from ..tools.vcs import GitError, GitIdentity

LOGGER = logging.getLogger(__name__)

SPONSOR_LABEL = "sponsor"
INTEGRATED_LABEL = "integrated"

_ADDRESS_RE = re.compile(r"^(?:(?P<name>[^<>]*?)\s*<(?P<email>[^<>\s]+@[^<>\s]+)>|(?P<bare>[^<>\s]+@[^<>\s]+))$")


class CommandName(str, Enum):
    """Closed set of commands the bot answers itself."""

    HELP = "help"
    INTEGRATE = "integrate"
    SPONSOR = "sponsor"
    CONTRIBUTOR = "contributor"
    SUMMARY = "summary"


@dataclass(slots=True)
class CommandSettings:
    """Per-bot command configuration, shared by reference between work items."""

    census_name: str
    census_provider: CensusProvider
    integrator: Integrator
    external: Mapping[str, str] = field(default_factory=dict)
    blockers: Mapping[str, str] = field(default_factory=dict)
    email_domain: str = "users.noreply.example.com"


@dataclass(slots=True)
class CommandContext:
    """Everything a handler may consult besides the change request itself."""

    census: CensusInstance
    bot_user: HostUser
    settings: CommandSettings


HandlerFn = Callable[[PullRequest, CommandContext, Path, str, Comment, List[Comment], TextIO], None]


@dataclass(frozen=True, slots=True)
class CommandHandler:
    description: str
    handle: HandlerFn


# ------------------------------------------------------------------ helpers
def _require_author(pr: PullRequest, comment: Comment, command: CommandName, reply: TextIO) -> bool:
    if comment.author == pr.author:
        return True
    reply.write(
        f"Only the author (@{pr.author.username}) is allowed to issue the `{command.value}` command."
    )
    return False


def _identity(context: CommandContext, user: HostUser) -> GitIdentity:
    name = context.census.full_name(user) or user.username
    email = context.census.email(user) or f"{user.username}@{context.settings.email_domain}"
    return GitIdentity(name=name, email=email)


def _readiness_problems(pr: PullRequest, context: CommandContext, head: str) -> List[str]:
    problems: List[str] = []
    labels = set(pr.labels())
    for name, description in sorted(context.settings.blockers.items()):
        if name in labels:
            problems.append(description)
    checks = CheckStore(pr).checks(head)
    if not checks:
        problems.append(f"No status checks have completed for {head}.")
    for name, check in sorted(checks.items()):
        if check.status is CheckStatus.RUNNING:
            problems.append(f"The check **{name}** is still running.")
        elif check.status is CheckStatus.FAILURE:
            problems.append(f"The check **{name}** has failed.")
    return problems


def _integrate(
    pr: PullRequest,
    context: CommandContext,
    scratch_path: Path,
    head: str,
    all_comments: Sequence[Comment],
    reply: TextIO,
    *,
    sponsor: Optional[HostUser] = None,
) -> None:
    bot_user = context.bot_user
    contributors = eventlog.contributors(bot_user, all_comments)
    summary = eventlog.latest_summary(bot_user, all_comments)
    message = commit_message(
        pr,
        summary=summary,
        contributors=contributors,
        reviewers=approving_reviewers(pr, head),
        sponsor=sponsor.username if sponsor else None,
    )
    author = _identity(context, pr.author)
    committer = _identity(context, sponsor) if sponsor else author
    try:
        commit = context.settings.integrator.integrate(
            pr,
            head,
            message,
            author=author,
            committer=committer,
            scratch_path=scratch_path,
        )
    except (GitError, InvariantViolation) as error:
        LOGGER.warning("Integration of change request %s failed: %s", pr.id, error)
        reply.write(f"Integration failed: {error}")
        return

    reply.write(f"Pushed as commit {commit}.")
    # Nothing after the push may propagate: the reply must still be posted.
    try:
        pr.add_label(INTEGRATED_LABEL)
        if SPONSOR_LABEL in pr.labels():
            pr.remove_label(SPONSOR_LABEL)
        pr.set_state(PullRequestState.CLOSED)
    except TransientHostError as error:
        LOGGER.warning("Change request %s was integrated but could not be updated: %s", pr.id, error)
        reply.write(
            f"\n\nThe change request could not be labelled and closed afterwards ({error}); "
            "please close it manually."
        )


def help_text(external: Mapping[str, str]) -> str:
    """Render the list of built-in and external commands, sorted by name."""
    entries = [(name.value, handler.description) for name, handler in COMMAND_HANDLERS.items()]
    builtin = {name for name, _ in entries}
    entries.extend((name, description) for name, description in external.items() if name not in builtin)
    lines = ["Available commands:"]
    lines.extend(f" * {name} - {description}" for name, description in sorted(entries))
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------- handlers
def _help(
    pr: PullRequest,
    context: CommandContext,
    scratch_path: Path,
    args: str,
    comment: Comment,
    all_comments: List[Comment],
    reply: TextIO,
) -> None:
    reply.write(help_text(context.settings.external))


def _contributor(
    pr: PullRequest,
    context: CommandContext,
    scratch_path: Path,
    args: str,
    comment: Comment,
    all_comments: List[Comment],
    reply: TextIO,
) -> None:
    if not _require_author(pr, comment, CommandName.CONTRIBUTOR, reply):
        return

    op_word, _, rest = args.strip().partition(" ")
    match = _ADDRESS_RE.match(rest.strip())
    if op_word not in {op.value for op in ContributorOp} or match is None:
        reply.write("Syntax: `/contributor (add|remove) [Full Name] <email@address>`")
        return

    email = match.group("email") or match.group("bare")
    name = (match.group("name") or "").strip()
    address = f"{name} <{email}>" if name else email
    op = ContributorOp(op_word)

    if op is ContributorOp.ADD:
        reply.write(CONTRIBUTOR.encode(ContributorAction(op=op, address=address)) + "\n")
        reply.write(f"Contributor `{address}` successfully added.")
        return

    existing = eventlog.contributors(context.bot_user, all_comments)
    matching = [entry for entry in existing if entry == address or entry.endswith(f"<{email}>") or entry == email]
    if not matching:
        reply.write(f"Contributor `{address}` was not found.")
        if existing:
            reply.write("\nCurrent contributors are:\n")
            for entry in existing:
                reply.write(f" - `{entry}`\n")
        return
    for entry in matching:
        reply.write(CONTRIBUTOR.encode(ContributorAction(op=op, address=entry)) + "\n")
    reply.write(f"Contributor `{matching[0]}` successfully removed.")


def _summary(
    pr: PullRequest,
    context: CommandContext,
    scratch_path: Path,
    args: str,
    comment: Comment,
    all_comments: List[Comment],
    reply: TextIO,
) -> None:
    if not _require_author(pr, comment, CommandName.SUMMARY, reply):
        return

    lines = comment.body.strip().splitlines()
    text = "\n".join([args.strip(), *lines[1:]]).strip()
    if not text:
        if eventlog.latest_summary(context.bot_user, all_comments) is None:
            reply.write("To set a summary, use the syntax `/summary <summary text>`.")
        else:
            reply.write(SUMMARY.encode(Summary(text="")) + "\n")
            reply.write("Removing existing summary.")
        return

    reply.write(SUMMARY.encode(Summary(text=text)) + "\n")
    # Echoed text must not be readable as a marker in the bot's own comment.
    shown = text.replace("<!--", "&lt;!--")
    reply.write(f"Setting summary to:\n\n```\n{shown}\n```")


def _integrate_command(
    pr: PullRequest,
    context: CommandContext,
    scratch_path: Path,
    args: str,
    comment: Comment,
    all_comments: List[Comment],
    reply: TextIO,
) -> None:
    if not _require_author(pr, comment, CommandName.INTEGRATE, reply):
        return

    head = pr.head_hash()
    if head == pr.target_hash():
        reply.write("This change request does not contain any commits to integrate.")
        return
    problems = _readiness_problems(pr, context, head)
    if problems:
        reply.write("This change request cannot be integrated yet:\n")
        for problem in problems:
            reply.write(f" - {problem}\n")
        return

    if is_committer(context.census, comment.author):
        _integrate(pr, context, scratch_path, head, all_comments, reply)
        return

    reply.write(INTEGRATION_REQUEST.encode(IntegrationRequest(hash=head)) + "\n")
    reply.write(
        f"Your change (at version {head}) is now ready to be sponsored by a Committer."
    )
    pr.add_label(SPONSOR_LABEL)


def _sponsor(
    pr: PullRequest,
    context: CommandContext,
    scratch_path: Path,
    args: str,
    comment: Comment,
    all_comments: List[Comment],
    reply: TextIO,
) -> None:
    if comment.author == pr.author:
        reply.write("Authors cannot sponsor their own changes.")
        return
    if not is_committer(context.census, comment.author):
        reply.write("Only Committers are allowed to sponsor changes.")
        return

    requested = eventlog.pending_integration(context.bot_user, all_comments)
    if requested is None:
        reply.write("The change request has not requested sponsorship; the author must issue `/integrate` first.")
        return
    head = pr.head_hash()
    if requested != head:
        reply.write(
            f"The change request has been updated since integration was requested (at {requested}); "
            "the author must issue `/integrate` again."
        )
        return
    problems = _readiness_problems(pr, context, head)
    if problems:
        reply.write("This change request cannot be integrated yet:\n")
        for problem in problems:
            reply.write(f" - {problem}\n")
        return

    _integrate(pr, context, scratch_path, head, all_comments, reply, sponsor=comment.author)


COMMAND_HANDLERS: Dict[CommandName, CommandHandler] = {
    CommandName.HELP: CommandHandler("shows this text", _help),
    CommandName.INTEGRATE: CommandHandler("performs integration of the changes in the change request", _integrate_command),
    CommandName.SPONSOR: CommandHandler("performs integration of a change request authored by a non-committer", _sponsor),
    CommandName.CONTRIBUTOR: CommandHandler("adds or removes additional contributors for a change request", _contributor),
    CommandName.SUMMARY: CommandHandler("updates the summary in the commit message", _summary),
}


__all__ = [
    "COMMAND_HANDLERS",
    "CommandContext",
    "CommandHandler",
    "CommandName",
    "CommandSettings",
    "INTEGRATED_LABEL",
    "SPONSOR_LABEL",
    "help_text",
]
