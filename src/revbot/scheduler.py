"""Work-item scheduling with per-resource mutual exclusion.

The hosting platform offers no locking primitive, so the runner itself is the
lock: two items that target the same change request never run at the same
time and start in the order they were submitted, while everything else runs
in parallel on a bounded thread pool. Every item gets a private scratch
directory and its failures are contained: transient errors are retried with
backoff, anything else drops the item and is recorded in :attr:`BotRunner.failures`.
"""

from __future__ import annotations

import itertools
import logging
import shutil
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Protocol, Sequence

from .errors import RETRYABLE_ERRORS, LocalIOError, SchedulerClosedError
from .utils.slug import slugify

if TYPE_CHECKING:
    from .config import RunnerConfig

LOGGER = logging.getLogger(__name__)

ResourceKey = tuple[str, str]


class WorkItem(ABC):
    """Unit of bot work bound to one resource.

    ``kind`` names the sort of work (it scopes scratch directories and log
    lines); ``resource_key`` is the ``(resource-name, resource-id)`` pair, for
    example ``(repository, change-request id)``.
    """

    kind: str = "item"

    @property
    @abstractmethod
    def resource_key(self) -> ResourceKey:
        """Return the resource this item mutates."""

    def concurrent_with(self, other: "WorkItem") -> bool:
        """Return ``True`` when this item may run at the same time as ``other``."""
        return self.resource_key != other.resource_key

    @abstractmethod
    def run(self, scratch_path: Path) -> None:
        """Perform the work using ``scratch_path`` as private storage."""

    def __repr__(self) -> str:
        name, identifier = self.resource_key
        return f"{type(self).__name__}@{name}#{identifier}"


class Bot(Protocol):
    """Source of work items polled by :meth:`BotRunner.run_once`."""

    def periodic_items(self) -> Sequence[WorkItem]: ...


@dataclass(slots=True)
class _Entry:
    item: WorkItem
    sequence: int
    attempts: int = 0
    not_before: float = 0.0


@dataclass(frozen=True, slots=True)
class ItemFailure:
    """Item dropped after a fatal error or after exhausting its retries."""

    item: WorkItem
    error: BaseException
    attempts: int


def _exclusive(first: WorkItem, second: WorkItem) -> bool:
    return not (first.concurrent_with(second) and second.concurrent_with(first))


class BotRunner:
    """Bounded worker pool enforcing FIFO mutual exclusion per resource."""

    def __init__(
        self,
        storage_path: Path | str,
        *,
        workers: int = 4,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._scratch_root = Path(storage_path) / "scratch"
        self._workers = workers
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="revbot")
        self._condition = threading.Condition()
        self._pending: List[_Entry] = []
        self._active: List[_Entry] = []
        self._timers: List[threading.Timer] = []
        self._failures: List[ItemFailure] = []
        self._sequence = itertools.count()
        self._closed = False

    @classmethod
    def from_config(cls, config: "RunnerConfig") -> "BotRunner":
        scheduler = config.scheduler
        return cls(
            config.storage.path,
            workers=scheduler.workers,
            max_attempts=scheduler.max_attempts,
            backoff_seconds=scheduler.backoff_seconds,
            max_backoff_seconds=scheduler.max_backoff_seconds,
        )

    def __enter__(self) -> "BotRunner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # --------------------------------------------------------------- admission
    def submit(self, item: WorkItem) -> None:
        """Queue ``item``; it starts once no exclusive predecessor is pending or running."""
        with self._condition:
            if self._closed:
                raise SchedulerClosedError(f"Runner is shutting down; rejected {item!r}")
            for entry in self._pending:
                if (
                    entry.attempts == 0
                    and entry.item.kind == item.kind
                    and entry.item.resource_key == item.resource_key
                ):
                    LOGGER.debug("Skipping %r: an equivalent item is already pending", item)
                    return
            self._pending.append(_Entry(item=item, sequence=next(self._sequence)))
            self._dispatch_locked()

    def _dispatch_locked(self) -> None:
        now = self._clock()
        blocked: List[WorkItem] = []
        for entry in list(self._pending):
            if len(self._active) >= self._workers:
                break
            ready = entry.not_before <= now
            free = not any(_exclusive(entry.item, active.item) for active in self._active)
            ordered = not any(_exclusive(entry.item, earlier) for earlier in blocked)
            if ready and free and ordered:
                self._pending.remove(entry)
                self._active.append(entry)
                self._executor.submit(self._execute, entry)
            else:
                blocked.append(entry.item)

    def _dispatch(self) -> None:
        with self._condition:
            if not self._closed:
                self._dispatch_locked()

    # --------------------------------------------------------------- execution
    def _execute(self, entry: _Entry) -> None:
        item = entry.item
        entry.attempts += 1
        scratch: Optional[Path] = None
        retry_delay: Optional[float] = None
        try:
            scratch = self._acquire_scratch(item)
            LOGGER.info("Running %r (attempt %d)", item, entry.attempts)
            item.run(scratch)
            LOGGER.debug("Completed %r", item)
        except RETRYABLE_ERRORS + (OSError,) as error:
            if isinstance(error, OSError):
                wrapped = LocalIOError(f"Scratch storage failure: {error}")
                wrapped.__cause__ = error
                error = wrapped
            if entry.attempts < self._max_attempts:
                retry_delay = self._backoff(entry.attempts)
                LOGGER.warning(
                    "Work item %r failed (attempt %d/%d), retrying in %.1fs: %s",
                    item,
                    entry.attempts,
                    self._max_attempts,
                    retry_delay,
                    error,
                )
            else:
                self._record_failure(entry, error)
        except Exception as error:  # noqa: BLE001 - one item must not take down the runner
            self._record_failure(entry, error)
        finally:
            if scratch is not None:
                self._release_scratch(scratch)
            with self._condition:
                self._active.remove(entry)
                if retry_delay is not None and self._closed:
                    LOGGER.info("Not retrying %r: runner is shutting down", item)
                elif retry_delay is not None:
                    entry.not_before = self._clock() + retry_delay
                    self._pending.append(entry)
                    self._pending.sort(key=lambda pending: pending.sequence)
                    self._schedule_wakeup(retry_delay)
                if not self._closed:
                    self._dispatch_locked()
                self._condition.notify_all()

    def _backoff(self, attempts: int) -> float:
        return min(self._backoff_seconds * (2 ** (attempts - 1)), self._max_backoff_seconds)

    def _schedule_wakeup(self, delay: float) -> None:
        timer = threading.Timer(delay, self._dispatch)
        timer.daemon = True
        self._timers = [existing for existing in self._timers if existing.is_alive()]
        self._timers.append(timer)
        timer.start()

    def _record_failure(self, entry: _Entry, error: BaseException) -> None:
        LOGGER.error(
            "Dropping work item %r after %d attempt(s): %s",
            entry.item,
            entry.attempts,
            error,
            exc_info=error,
        )
        with self._condition:
            self._failures.append(ItemFailure(item=entry.item, error=error, attempts=entry.attempts))

    # ----------------------------------------------------------------- scratch
    def _acquire_scratch(self, item: WorkItem) -> Path:
        kind_root = self._scratch_root / slugify(item.kind, fallback="item")
        try:
            kind_root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix="run-", dir=kind_root))
        except OSError as error:
            raise LocalIOError(f"Unable to create scratch directory under {kind_root}: {error}") from error

    @staticmethod
    def _release_scratch(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except OSError as error:
            LOGGER.warning("Failed to remove scratch path %s: %s", path, error)

    # ------------------------------------------------------------------- state
    @property
    def failures(self) -> List[ItemFailure]:
        with self._condition:
            return list(self._failures)

    def idle(self) -> bool:
        with self._condition:
            return not self._pending and not self._active

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is pending or running; ``False`` on timeout."""
        with self._condition:
            return self._condition.wait_for(
                lambda: not self._pending and not self._active,
                timeout=timeout,
            )

    def run_once(self, bots: Iterable[Bot], *, timeout: Optional[float] = None) -> bool:
        """Submit every periodic item of ``bots`` and wait for them to finish."""
        for bot in bots:
            for item in bot.periodic_items():
                self.submit(item)
        return self.wait_until_idle(timeout)

    def run_periodically(
        self,
        bots: Sequence[Bot],
        *,
        interval: float,
        iterations: Optional[int] = None,
    ) -> None:
        """Poll ``bots`` every ``interval`` seconds until shut down."""
        for iteration in itertools.count():
            if iterations is not None and iteration >= iterations:
                return
            with self._condition:
                if self._closed:
                    return
            self.run_once(bots)
            time.sleep(interval)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop admitting work; running items finish, queued ones are discarded."""
        with self._condition:
            if self._closed:
                return
            self._closed = True
            if self._pending:
                LOGGER.info("Discarding %d queued work item(s) on shutdown", len(self._pending))
            self._pending.clear()
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
            self._condition.notify_all()
            if wait:
                self._condition.wait_for(lambda: not self._active)
        self._executor.shutdown(wait=wait)


__all__ = ["Bot", "BotRunner", "ItemFailure", "ResourceKey", "WorkItem"]
