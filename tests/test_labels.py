from __future__ import annotations

import re

from revbot.labels import LabelerWorkItem, ProcessedMarkers, desired_labels, reconcile_labels

PATTERNS = {
    "build": [re.compile(r"^make/"), re.compile(r"\.gmk$")],
    "docs": [re.compile(r"^doc/")],
    "core": [re.compile(r"^src/core/")],
}


def test_reconcile_adds_missing_and_removes_stale_labels() -> None:
    assert reconcile_labels({"A", "B"}, {"B", "C"}) == (["A"], ["C"])


def test_desired_labels_match_any_pattern_anywhere_in_path() -> None:
    files = ["make/Main.gmk", "src/core/a.py", "README.md"]

    assert desired_labels(files, PATTERNS) == {"build", "core"}


def test_labeler_only_touches_owned_labels(pr, tmp_path) -> None:
    pr.set_changed_files(["doc/guide.md"])
    pr.add_label("core")
    pr.add_label("needs-triage")

    LabelerWorkItem(pr, PATTERNS, ProcessedMarkers()).run(tmp_path)

    assert sorted(pr.labels()) == ["docs", "needs-triage"]


def test_labeler_skips_head_hashes_already_processed(pr, tmp_path) -> None:
    processed = ProcessedMarkers()
    pr.set_changed_files(["doc/guide.md"])
    item = LabelerWorkItem(pr, PATTERNS, processed)

    item.run(tmp_path)
    pr.remove_label("docs")
    item.run(tmp_path)
    assert pr.labels() == []
    assert len(processed) == 1

    pr.set_head_hash("2" * 40)
    item.run(tmp_path)
    assert pr.labels() == ["docs"]
