"""Turning scan requests into serialized packets, optionally in parallel."""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Protocol

from sxscan.requests import Request

_POLL_INTERVAL = 0.05
_END = object()


@dataclass
class BufferData:
    """A serialized packet, or the error that prevented building it."""

    buf: bytes | None = None
    err: BaseException | None = None


class _PacketFiller(Protocol):
    def fill(self, request: Request) -> bytes: ...


def _offer(out: queue.Queue, item: Any, stop: threading.Event) -> bool:
    while not stop.is_set():
        try:
            out.put(item, timeout=_POLL_INTERVAL)
            return True
        except queue.Full:
            continue
    return False


def _synchronized(iterator: Iterator[Any]) -> Callable[[], Iterator[Any]]:
    """Return a factory of iterators that share ``iterator`` safely across threads."""
    lock = threading.Lock()

    def share() -> Iterator[Any]:
        while True:
            with lock:
                item = next(iterator, _END)
            if item is _END:
                return
            yield item

    return share


class PacketGenerator:
    """Builds one packet per request with a packet filler."""

    def __init__(self, filler: _PacketFiller) -> None:
        self._filler = filler

    def packets(self, requests: Iterable[Request],
                stop: threading.Event | None = None) -> Iterator[BufferData]:
        for request in requests:
            if stop is not None and stop.is_set():
                return
            if request.err is not None:
                yield BufferData(err=request.err)
                continue
            try:
                buf = self._filler.fill(request)
            except Exception as exc:  # reported in the stream, not raised
                yield BufferData(err=exc)
                continue
            yield BufferData(buf=buf)


class PacketMultiGenerator:
    """Builds packets with several worker threads sharing one request stream."""

    def __init__(self, filler: _PacketFiller, num_workers: int) -> None:
        self._gen = PacketGenerator(filler)
        self._num_workers = num_workers

    def packets(self, requests: Iterable[Request],
                stop: threading.Event | None = None) -> Iterator[BufferData]:
        share = _synchronized(iter(requests))
        workers = [self._gen.packets(share(), stop) for _ in range(self._num_workers)]
        return merge_streams(*workers, stop=stop)


def _pump(stream: Iterable[Any], out: queue.Queue, stop: threading.Event) -> None:
    try:
        for item in stream:
            if stop.is_set() or not _offer(out, item, stop):
                return
    finally:
        _offer(out, _END, stop)


def _drain(out: queue.Queue, remaining: int, stop: threading.Event) -> Iterator[Any]:
    while remaining:
        if stop.is_set():
            return
        try:
            item = out.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            continue
        if item is _END:
            remaining -= 1
            continue
        yield item


def merge_streams(*args: Iterable[Any], stop: threading.Event | None = None) -> Iterator[Any]:
    """Merge several iterables, each consumed in its own thread, into one.

    The merged stream ends when every input is exhausted or ``stop`` is set.
    """
    stop = stop if stop is not None else threading.Event()
    out: queue.Queue = queue.Queue(maxsize=max(len(args), 1) * 100)
    for stream in args:
        threading.Thread(target=_pump, args=(stream, out, stop), daemon=True).start()
    return _drain(out, len(args), stop)