"""A bounded queue of scan results that closes when a scan is stopped."""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Iterator
from typing import Protocol, runtime_checkable

_POLL_INTERVAL = 0.05


@runtime_checkable
class Result(Protocol):
    """A single finding of a scan."""

    def id(self) -> str: ...

    def to_json(self) -> str: ...


class ResultQueue:
    """Passes results from scanners to a consumer until ``stop`` is set.

    Results put after the stop event is set are dropped. Results already
    queued can still be read; after them the queue reports that it is closed.
    """

    def __init__(self, stop: threading.Event, capacity: int = 100) -> None:
        self._stop = stop
        self._queue: queue.Queue[Result] = queue.Queue(maxsize=max(capacity, 1))

    def put(self, result: Result) -> None:
        """Queue a result, blocking while the queue is full and not stopped."""
        while not self._stop.is_set():
            try:
                self._queue.put(result, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def get(self, timeout: float | None = None) -> Result | None:
        """Return the next result, or None once the queue is stopped and empty.

        Raises TimeoutError if ``timeout`` seconds pass with nothing to read.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._stop.is_set():
                try:
                    return self._queue.get_nowait()
                except queue.Empty:
                    return None
            wait = _POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError("no result available")
                wait = min(wait, remaining)
            try:
                return self._queue.get(timeout=wait)
            except queue.Empty:
                continue

    def __iter__(self) -> Iterator[Result]:
        while (result := self.get()) is not None:
            yield result