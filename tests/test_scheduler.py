from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from revbot.errors import InvariantViolation, SchedulerClosedError, TransientHostError
from revbot.scheduler import BotRunner, WorkItem


class Timeline:
    """Thread-safe record of (label, start, end) intervals."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.intervals: List[Tuple[str, float, float]] = []
        self.starts: List[str] = []

    def started(self, label: str) -> None:
        with self._lock:
            self.starts.append(label)

    def record(self, label: str, start: float, end: float) -> None:
        with self._lock:
            self.intervals.append((label, start, end))


class RecordingItem(WorkItem):
    kind = "record"

    def __init__(
        self,
        key: Tuple[str, str],
        label: str,
        timeline: Timeline,
        *,
        duration: float = 0.02,
        action: Optional[Callable[[Path], None]] = None,
    ) -> None:
        self._key = key
        self.label = label
        self.timeline = timeline
        self.duration = duration
        self.action = action

    @property
    def resource_key(self) -> Tuple[str, str]:
        return self._key

    def run(self, scratch_path: Path) -> None:
        start = time.monotonic()
        self.timeline.started(self.label)
        if self.action is not None:
            self.action(scratch_path)
        time.sleep(self.duration)
        self.timeline.record(self.label, start, time.monotonic())


class FlakyItem(WorkItem):
    kind = "flaky"

    def __init__(self, key: Tuple[str, str], failures: int, error: Exception) -> None:
        self._key = key
        self.failures = failures
        self.error = error
        self.calls = 0

    @property
    def resource_key(self) -> Tuple[str, str]:
        return self._key

    def run(self, scratch_path: Path) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error


def _overlaps(first: Tuple[str, float, float], second: Tuple[str, float, float]) -> bool:
    return first[1] < second[2] and second[1] < first[2]


def test_items_for_the_same_resource_never_overlap(tmp_path) -> None:
    timeline = Timeline()
    with BotRunner(tmp_path, workers=4) as runner:
        for index in range(6):
            runner.submit(RecordingItem(("repo", "1"), f"same-{index}", timeline))
        assert runner.wait_until_idle(timeout=10)

    intervals = sorted(timeline.intervals, key=lambda interval: interval[1])
    assert len(intervals) == 6
    for earlier, later in zip(intervals, intervals[1:]):
        assert not _overlaps(earlier, later)


def test_items_for_the_same_resource_start_in_submission_order(tmp_path) -> None:
    timeline = Timeline()
    with BotRunner(tmp_path, workers=3) as runner:
        for index in range(5):
            runner.submit(RecordingItem(("repo", "1"), f"item-{index}", timeline))
            runner.submit(RecordingItem(("repo", "2"), f"other-{index}", timeline))
        assert runner.wait_until_idle(timeout=10)

    same = [label for label in timeline.starts if label.startswith("item-")]
    assert same == [f"item-{index}" for index in range(5)]


def test_items_for_different_resources_run_in_parallel(tmp_path) -> None:
    barrier = threading.Barrier(2, timeout=5)
    timeline = Timeline()

    def wait_for_peer(_: Path) -> None:
        barrier.wait()

    with BotRunner(tmp_path, workers=2) as runner:
        runner.submit(RecordingItem(("repo", "1"), "first", timeline, action=wait_for_peer))
        runner.submit(RecordingItem(("repo", "2"), "second", timeline, action=wait_for_peer))
        assert runner.wait_until_idle(timeout=10)

    assert runner.failures == []
    assert len(timeline.intervals) == 2


def test_transient_errors_are_retried(tmp_path) -> None:
    item = FlakyItem(("repo", "1"), failures=2, error=TransientHostError("rate limited"))
    with BotRunner(tmp_path, max_attempts=3, backoff_seconds=0.0) as runner:
        runner.submit(item)
        assert runner.wait_until_idle(timeout=10)

    assert item.calls == 3
    assert runner.failures == []


def test_transient_errors_give_up_after_max_attempts(tmp_path) -> None:
    item = FlakyItem(("repo", "1"), failures=10, error=TransientHostError("down"))
    with BotRunner(tmp_path, max_attempts=2, backoff_seconds=0.0) as runner:
        runner.submit(item)
        assert runner.wait_until_idle(timeout=10)

    assert item.calls == 2
    assert [failure.attempts for failure in runner.failures] == [2]


def test_invariant_violation_drops_the_item_and_runner_continues(tmp_path) -> None:
    broken = FlakyItem(("repo", "1"), failures=1, error=InvariantViolation("bad state"))
    timeline = Timeline()
    with BotRunner(tmp_path) as runner:
        runner.submit(broken)
        runner.submit(RecordingItem(("repo", "1"), "after", timeline))
        assert runner.wait_until_idle(timeout=10)

    assert broken.calls == 1
    assert len(runner.failures) == 1
    assert isinstance(runner.failures[0].error, InvariantViolation)
    assert timeline.starts == ["after"]


def test_each_run_gets_a_private_scratch_directory_that_is_removed(tmp_path) -> None:
    seen: List[Path] = []
    lock = threading.Lock()
    timeline = Timeline()

    def remember(scratch: Path) -> None:
        assert scratch.is_dir()
        assert not any(scratch.iterdir())
        (scratch / "marker.txt").write_text("x", encoding="utf-8")
        with lock:
            seen.append(scratch)

    with BotRunner(tmp_path, workers=2) as runner:
        runner.submit(RecordingItem(("repo", "1"), "a", timeline, action=remember))
        runner.submit(RecordingItem(("repo", "2"), "b", timeline, action=remember))
        assert runner.wait_until_idle(timeout=10)

    assert len(set(seen)) == 2
    for path in seen:
        assert (tmp_path / "scratch") in path.parents
        assert not path.exists()


def test_duplicate_pending_item_is_not_queued_twice(tmp_path) -> None:
    gate = threading.Event()
    timeline = Timeline()

    with BotRunner(tmp_path, workers=1) as runner:
        runner.submit(RecordingItem(("repo", "0"), "blocker", timeline, action=lambda _: gate.wait(5)))
        runner.submit(RecordingItem(("repo", "1"), "first", timeline))
        runner.submit(RecordingItem(("repo", "1"), "duplicate", timeline))
        gate.set()
        assert runner.wait_until_idle(timeout=10)

    assert timeline.starts == ["blocker", "first"]


def test_shutdown_rejects_new_work(tmp_path) -> None:
    runner = BotRunner(tmp_path)
    runner.shutdown()

    with pytest.raises(SchedulerClosedError):
        runner.submit(RecordingItem(("repo", "1"), "late", Timeline()))


def test_run_once_processes_every_periodic_item(tmp_path) -> None:
    timeline = Timeline()

    class StaticBot:
        def periodic_items(self):
            return [RecordingItem(("repo", str(index)), f"item-{index}", timeline) for index in range(3)]

    with BotRunner(tmp_path) as runner:
        assert runner.run_once([StaticBot()], timeout=10)

    assert sorted(timeline.starts) == ["item-0", "item-1", "item-2"]


def test_run_periodically_polls_bots_each_interval(tmp_path) -> None:
    timeline = Timeline()
    polls: List[int] = []

    class CountingBot:
        def periodic_items(self):
            polls.append(len(polls))
            return [RecordingItem(("repo", "1"), f"poll-{len(polls)}", timeline)]

    with BotRunner(tmp_path) as runner:
        runner.run_periodically([CountingBot()], interval=0.01, iterations=2)

    assert polls == [0, 1]
    assert timeline.starts == ["poll-1", "poll-2"]


def test_run_periodically_stops_once_shut_down(tmp_path) -> None:
    polls: List[int] = []

    class IdleBot:
        def periodic_items(self):
            polls.append(1)
            return []

    runner = BotRunner(tmp_path)
    runner.shutdown()
    runner.run_periodically([IdleBot()], interval=0.01, iterations=5)

    assert polls == []


def test_work_item_repr_names_resource() -> None:
    item = RecordingItem(("repo", "42"), "x", Timeline())

    assert repr(item) == "RecordingItem@repo#42"
