"""Keep change request labels in sync with the files it touches."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Pattern, Sequence, Set, Tuple

from .host.base import PullRequest
from .workitem import PullRequestWorkItem

LOGGER = logging.getLogger(__name__)


class ProcessedMarkers:
    """Thread-safe ``key -> handled`` table shared by work items of one bot.

    Independent items touch disjoint keys concurrently, so every access goes
    through the lock.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return bool(self._entries.get(key))  # type: ignore[arg-type]

    def mark(self, key: str, handled: bool = True) -> None:
        with self._lock:
            self._entries[key] = handled

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def desired_labels(changed_files: Iterable[str], label_patterns: Mapping[str, Sequence[Pattern[str]]]) -> Set[str]:
    """Return the labels whose patterns match at least one changed path."""
    labels: Set[str] = set()
    for path in changed_files:
        for label, patterns in label_patterns.items():
            if label in labels:
                continue
            if any(pattern.search(path) for pattern in patterns):
                labels.add(label)
    return labels


def reconcile_labels(desired: Iterable[str], current: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Return ``(to_add, to_remove)`` turning ``current`` into ``desired``."""
    wanted = set(desired)
    present = set(current)
    return sorted(wanted - present), sorted(present - wanted)


class LabelerWorkItem(PullRequestWorkItem):
    """Apply path-based labels once per head commit.

    Only labels that appear in ``label_patterns`` are owned by the bot; any
    other label on the change request is left alone. Like check updates this
    is read-then-write: a label a human adds mid-run may be removed again.
    """

    kind = "labeler"

    def __init__(
        self,
        pr: PullRequest,
        label_patterns: Mapping[str, Sequence[Pattern[str]]],
        processed: ProcessedMarkers,
    ) -> None:
        super().__init__(pr)
        self.label_patterns = label_patterns
        self.processed = processed

    def _processed_key(self, hash: str) -> str:
        return f"{self.pr.repository.name}#{self.pr.id}@{hash}"

    def run(self, scratch_path: Path) -> None:
        head = self.pr.head_hash()
        key = self._processed_key(head)
        if key in self.processed:
            LOGGER.debug("Labels already reconciled for %r at %s", self, head)
            return

        desired = desired_labels(self.pr.changed_files(), self.label_patterns)
        owned = [label for label in self.pr.labels() if label in self.label_patterns]
        to_add, to_remove = reconcile_labels(desired, owned)
        for label in to_add:
            LOGGER.info("Adding label %s to %r", label, self)
            self.pr.add_label(label)
        for label in to_remove:
            LOGGER.info("Removing label %s from %r", label, self)
            self.pr.remove_label(label)

        self.processed.mark(key)


__all__ = [
    "LabelerWorkItem",
    "ProcessedMarkers",
    "desired_labels",
    "reconcile_labels",
]
