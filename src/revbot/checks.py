"""Status checks persisted as a single, repeatedly edited comment.

Each check owns exactly one bot comment identified by a header marker. The
comment's result marker holds the machine-readable state (status, commit hash,
opaque metadata); the rest of the body is the human-readable report. Reading a
check back only ever looks at the latest result marker of that one comment.

Updates are read-then-write against the host without compare-and-swap. The
runner guarantees a single writer per change request, but a human editing the
comment concurrently can still have their edit overwritten.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol

from .errors import InvariantViolation
from .host.base import Comment, PullRequest
from .markers.codec import CHECK_HEADER, CHECK_RESULT, CheckHeader, CheckResult, CheckStatus
from .workitem import PullRequestWorkItem

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_BODY = "Progress deleted?"

_TITLE_RE = re.compile(r"^##### ([^\n\r]*)\r?\n(.*)", re.DOTALL | re.MULTILINE)
_ANNOTATION_LINE_RE = re.compile(r"^ {2}- (Notice|Warning|Failure): \[|^ {4}- ")


class AnnotationLevel(str, Enum):
    NOTICE = "Notice"
    WARNING = "Warning"
    FAILURE = "Failure"


@dataclass(frozen=True, slots=True)
class Annotation:
    """Finding attached to a line of a file at the check's commit."""

    level: AnnotationLevel
    path: str
    line: int
    message: str


@dataclass(slots=True)
class Check:
    """Named verification result for one commit of a change request."""

    name: str
    hash: str
    status: CheckStatus = CheckStatus.RUNNING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    metadata: Optional[str] = None
    annotations: List[Annotation] = field(default_factory=list)

    def complete(
        self,
        success: bool,
        *,
        title: Optional[str] = None,
        summary: Optional[str] = None,
        annotations: Optional[List[Annotation]] = None,
    ) -> "Check":
        """Return a terminal copy of this check."""
        return replace(
            self,
            status=CheckStatus.SUCCESS if success else CheckStatus.FAILURE,
            title=title,
            summary=summary,
            annotations=list(annotations or []),
        )


def _hard_breaks(text: str) -> str:
    return text.replace("\n", "  \n")


def _soft_breaks(text: str) -> str:
    return text.replace("  \n", "\n")


class CheckStore:
    """Create, update and read checks stored in a change request's comments."""

    def __init__(self, pr: PullRequest) -> None:
        self.pr = pr

    # ----------------------------------------------------------------- lookup
    def _bot_comments(self) -> List[Comment]:
        bot_user = self.pr.repository.current_user()
        return [comment for comment in self.pr.comments() if comment.author == bot_user]

    def _find_comment(self, name: str, comments: Optional[List[Comment]] = None) -> Optional[Comment]:
        for comment in comments if comments is not None else self._bot_comments():
            if any(header.name == name for header in CHECK_HEADER.find_all(comment.body)):
                return comment
        return None

    # -------------------------------------------------------------- rendering
    def _markers(self, check: Check) -> str:
        header = CHECK_HEADER.encode(CheckHeader(name=check.name))
        result = CHECK_RESULT.encode(
            CheckResult(name=check.name, status=check.status, hash=check.hash, metadata=check.metadata)
        )
        return f"{header}\n{result}"

    def _link_to_diff(self, path: str, hash: str, line: int) -> str:
        web_url = self.pr.repository.web_url.rstrip("/")
        return f"[{path} line {line}]({web_url}/blob/{hash}/{path}#L{line})"

    def _render(self, check: Check) -> str:
        if check.status is CheckStatus.SUCCESS:
            return f":tada: The change request check **{check.name}** completed successfully!"
        if check.status is CheckStatus.RUNNING:
            body = f":hourglass_flowing_sand: The change request check **{check.name}** is currently running..."
        else:
            body = f":warning: The change request check **{check.name}** identified the following issues:"
        if check.title is not None and check.summary is not None:
            body += _hard_breaks(f"\n##### {check.title}\n{check.summary}")
        for annotation in check.annotations:
            link = self._link_to_diff(annotation.path, check.hash, annotation.line)
            lines = annotation.message.splitlines() or [""]
            details = "\n    - ".join(lines)
            body += f"\n  - {AnnotationLevel(annotation.level).value}: {link}\n    - {details}"
        return body

    # ------------------------------------------------------------- operations
    def create(self, check: Check) -> Comment:
        """Post the running state of ``check``, reusing its comment if one exists."""
        LOGGER.info("Looking for previous status check comment for %s", check.name)
        running = replace(check, status=CheckStatus.RUNNING, title=None, summary=None, annotations=[])
        message = f"{self._markers(running)}\n{self._render(running)}"
        previous = self._find_comment(check.name)
        if previous is not None:
            return self.pr.update_comment(previous.id, message)
        return self.pr.add_comment(message)

    def update(self, check: Check) -> Comment:
        """Overwrite the comment of ``check`` with its current state."""
        LOGGER.info("Updating status check %s (%s)", check.name, check.status.value)
        previous = self._find_comment(check.name)
        if previous is None:
            LOGGER.warning("Status check comment for %s is missing; posting a new one", check.name)
            previous = self.pr.add_comment(PLACEHOLDER_BODY)
        message = f"{self._markers(check)}\n{self._render(check)}"
        return self.pr.update_comment(previous.id, message)

    def read(self, name: str, hash: str) -> Optional[Check]:
        """Return the stored state of check ``name`` for commit ``hash``."""
        comment = self._find_comment(name)
        if comment is None:
            return None
        return self._parse(comment, name, hash)

    def checks(self, hash: str) -> Dict[str, Check]:
        """Return every check recorded for ``hash`` keyed by name."""
        found: Dict[str, Check] = {}
        comments = self._bot_comments()
        for comment in comments:
            for header in CHECK_HEADER.find_all(comment.body):
                if header.name in found or self._find_comment(header.name, comments) is not comment:
                    continue
                check = self._parse(comment, header.name, hash)
                if check is not None:
                    found[header.name] = check
        return found

    @staticmethod
    def _parse(comment: Comment, name: str, hash: str) -> Optional[Check]:
        results = [result for result in CHECK_RESULT.find_all(comment.body) if result.name == name]
        if not results:
            return None
        latest = results[-1]
        if latest.hash != hash:
            return None

        check = Check(
            name=name,
            hash=hash,
            status=latest.status,
            started_at=comment.created_at,
            completed_at=comment.updated_at if latest.status.terminal else None,
            metadata=latest.metadata,
        )
        match = _TITLE_RE.search(comment.body)
        if match:
            check.title = match.group(1).rstrip()
            summary_lines = match.group(2).split("\n")
            while summary_lines and _ANNOTATION_LINE_RE.match(summary_lines[-1]):
                summary_lines.pop()
            check.summary = _soft_breaks("\n".join(summary_lines)).rstrip()
        return check


# ------------------------------------------------------------------ running
@dataclass(slots=True)
class CheckOutcome:
    success: bool
    title: Optional[str] = None
    summary: Optional[str] = None
    annotations: List[Annotation] = field(default_factory=list)


class Checker(Protocol):
    """Verification producing the outcome of one named check."""

    name: str

    def fingerprint(self, pr: PullRequest) -> str:
        """Return a digest of every input besides the commit that affects the outcome."""

    def evaluate(self, pr: PullRequest, hash: str) -> CheckOutcome: ...


class BlockerChecker:
    """Fail while any configured blocker label is present on the change request."""

    def __init__(self, blockers: Mapping[str, str], *, name: str = "revbot") -> None:
        self.name = name
        self._blockers = dict(blockers)

    def _active_blockers(self, pr: PullRequest) -> List[str]:
        labels = set(pr.labels())
        return sorted(name for name in self._blockers if name in labels)

    def fingerprint(self, pr: PullRequest) -> str:
        joined = "\n".join(self._active_blockers(pr))
        return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]

    def evaluate(self, pr: PullRequest, hash: str) -> CheckOutcome:
        if hash == pr.target_hash():
            if pr.reviews():
                raise InvariantViolation(f"Change request {pr.id} has reviews but no commits")
            return CheckOutcome(
                success=False,
                title="No changes",
                summary="The change request does not contain any commits.",
            )
        active = self._active_blockers(pr)
        if active:
            lines = [f"- {name}: {self._blockers[name]}" for name in active]
            return CheckOutcome(
                success=False,
                title="Integration blocked",
                summary="\n".join(lines),
            )
        return CheckOutcome(success=True)


class CheckWorkItem(PullRequestWorkItem):
    """Run ``checker`` against the head commit unless a result is already recorded."""

    kind = "check"

    def __init__(self, pr: PullRequest, checker: Checker) -> None:
        super().__init__(pr)
        self.checker = checker

    def run(self, scratch_path: Path) -> None:
        store = CheckStore(self.pr)
        hash = self.pr.head_hash()
        fingerprint = self.checker.fingerprint(self.pr)
        existing = store.read(self.checker.name, hash)
        if existing is not None and existing.status.terminal and existing.metadata == fingerprint:
            LOGGER.debug("Check %s already completed for %s", self.checker.name, hash)
            return

        check = Check(name=self.checker.name, hash=hash, metadata=fingerprint)
        store.create(check)
        try:
            outcome = self.checker.evaluate(self.pr, hash)
        except InvariantViolation as error:
            store.update(check.complete(False, title="Check aborted", summary=str(error)))
            raise
        store.update(
            check.complete(
                outcome.success,
                title=outcome.title,
                summary=outcome.summary,
                annotations=outcome.annotations,
            )
        )


__all__ = [
    "Annotation",
    "AnnotationLevel",
    "BlockerChecker",
    "Check",
    "CheckOutcome",
    "CheckStatus",
    "CheckStore",
    "CheckWorkItem",
    "Checker",
]
