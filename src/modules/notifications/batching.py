"""Time-windowed batching of notifications.

Each batch key moves through three states::

    empty --add--> accumulating (timer armed) --fire/flush--> empty

The first item for a key arms a timer through the injected
``Scheduler``; later items within the window join the same batch.  When
the timer fires, or ``flush``/``flush_all`` is called, the whole batch is
handed to ``dispatch`` exactly once and the key returns to empty.

``ThreadingScheduler`` uses real timers.  ``ManualScheduler`` only fires
when time is advanced explicitly, so tests never sleep.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, TypeVar

import structlog
from django.db import connections

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall: ...


# ---------------------------------------------------------------------------
# Schedulers
# ---------------------------------------------------------------------------


class ThreadingScheduler:
    """Runs callbacks on daemon ``threading.Timer`` threads."""

    def now(self) -> float:
        return time.time()

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        def run() -> None:
            try:
                callback()
            finally:
                # Timer threads open their own DB connections.
                connections.close_all()

        timer = threading.Timer(delay_seconds, run)
        timer.daemon = True
        timer.start()
        return timer


@dataclass
class _ManualCall:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler: callbacks run only from ``advance``/``run_all``."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._calls: List[_ManualCall] = []

    def now(self) -> float:
        return self._now

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        call = _ManualCall(due=self._now + delay_seconds, callback=callback)
        self._calls.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for call in self._calls if not call.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward and run every callback now due; returns how many ran."""
        self._now += seconds
        due = [c for c in self._calls if not c.cancelled and c.due <= self._now]
        self._calls = [c for c in self._calls if not c.cancelled and c.due > self._now]
        for call in sorted(due, key=lambda c: c.due):
            call.callback()
        return len(due)

    def run_all(self) -> int:
        if not self._calls:
            return 0
        latest = max(c.due for c in self._calls)
        return self.advance(max(0.0, latest - self._now))


# ---------------------------------------------------------------------------
# Batcher
# ---------------------------------------------------------------------------


@dataclass
class _Batch(Generic[T]):
    items: List[T]
    scheduled_time: float
    timer: Optional[ScheduledCall] = field(default=None, repr=False)


@dataclass(frozen=True)
class BatchStatus:
    batch_key: str
    count: int
    scheduled_time: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "batch_key": self.batch_key,
            "count": self.count,
            "scheduled_time": self.scheduled_time,
        }


class NotificationBatcher(Generic[T]):
    def __init__(
        self,
        dispatch: Callable[[str, List[T]], None],
        window_seconds: float,
        scheduler: Scheduler,
    ) -> None:
        self._dispatch = dispatch
        self._window = window_seconds
        self._scheduler = scheduler
        self._batches: Dict[str, _Batch[T]] = {}
        self._lock = threading.Lock()

    def add(self, key: str, item: T) -> int:
        """Append *item* to the batch for *key*; returns the batch size."""
        with self._lock:
            batch = self._batches.get(key)
            if batch is not None:
                batch.items.append(item)
                count = len(batch.items)
                logger.info("notification.batch_appended", batch_key=key, count=count)
                return count

            batch = _Batch(items=[item], scheduled_time=self._scheduler.now() + self._window)
            self._batches[key] = batch
            batch.timer = self._scheduler.schedule(self._window, lambda: self.flush(key))

        logger.info("notification.batch_started", batch_key=key, window_seconds=self._window)
        return 1

    def flush(self, key: str) -> int:
        """Dispatch and clear the batch for *key*; returns how many items it held."""
        with self._lock:
            batch = self._batches.pop(key, None)
        if batch is None:
            return 0
        if batch.timer is not None:
            batch.timer.cancel()

        logger.info("notification.batch_flushed", batch_key=key, count=len(batch.items))
        if batch.items:
            self._dispatch(key, batch.items)
        return len(batch.items)

    def flush_all(self) -> int:
        with self._lock:
            keys = list(self._batches)
        return sum(self.flush(key) for key in keys)

    def status(self) -> List[BatchStatus]:
        with self._lock:
            return [
                BatchStatus(
                    batch_key=key,
                    count=len(batch.items),
                    scheduled_time=datetime.fromtimestamp(batch.scheduled_time, tz=timezone.utc),
                )
                for key, batch in self._batches.items()
            ]
