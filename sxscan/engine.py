"""Scan engines: packet-based and request/response-based."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from sxscan.generator import BufferData, merge_streams
from sxscan.requests import Request, ScanRange
from sxscan.results import Result, ResultQueue

_POLL_INTERVAL = 0.05
_ERROR_BUFFER = 100
_END = object()


class _RequestGenerator(Protocol):
    def generate_requests(self, scan_range: ScanRange) -> Iterable[Request]: ...


class _PacketGenerator(Protocol):
    def packets(self, requests: Iterable[Request],
                stop: threading.Event | None = None) -> Iterator[BufferData]: ...


class _PacketSource(Protocol):
    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]: ...


class _Sender(Protocol):
    def send_packets(self, packets: Iterator[BufferData], stop: threading.Event
                     ) -> tuple[threading.Event, Iterable[BaseException]]: ...


class _Receiver(Protocol):
    def receive_packets(self, stop: threading.Event) -> Iterable[BaseException]: ...


class _Scanner(Protocol):
    def scan(self, request: Request, stop: threading.Event | None = None) -> Result | None: ...


class _RateLimiter(Protocol):
    def take(self) -> Any: ...


class EngineRun:
    """A running scan: a completion signal and a stream of errors."""

    def __init__(self, done: threading.Event, errors: Iterator[BaseException]) -> None:
        self._done = done
        self._errors = errors

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the scan is finished; False if ``timeout`` elapsed first."""
        return self._done.wait(timeout)

    def errors(self) -> Iterator[BaseException]:
        """The errors reported by the scan, ending when the scan ends."""
        return self._errors


def merge_errors(*args: Iterable[BaseException],
                 stop: threading.Event | None = None) -> Iterator[BaseException]:
    """Merge several error streams into one."""
    return merge_streams(*args, stop=stop)


class PacketSource:
    """Builds the packets of a scan range from requests."""

    def __init__(self, reqgen: _RequestGenerator, pktgen: _PacketGenerator) -> None:
        self._reqgen = reqgen
        self._pktgen = pktgen

    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]:
        try:
            requests = self._reqgen.generate_requests(scan_range)
        except Exception as exc:  # reported in the stream, not raised
            return iter([BufferData(err=exc)])
        return self._pktgen.packets(requests, stop)


class PacketEngine:
    """Sends the packets of a source and receives the replies concurrently."""

    def __init__(self, source: _PacketSource, sender: _Sender, receiver: _Receiver) -> None:
        self._source = source
        self._sender = sender
        self._receiver = receiver

    def start(self, scan_range: ScanRange, stop: threading.Event | None = None) -> EngineRun:
        stop = stop if stop is not None else threading.Event()
        packets = self._source.packets(scan_range, stop)
        done, send_errors = self._sender.send_packets(packets, stop)
        receive_errors = self._receiver.receive_packets(stop)
        return EngineRun(done, merge_errors(send_errors, receive_errors, stop=stop))


class RateLimitScanner:
    """A scanner that waits for its rate limiter before every scan."""

    def __init__(self, delegate: _Scanner, limiter: _RateLimiter) -> None:
        self._delegate = delegate
        self._limiter = limiter

    def scan(self, request: Request, stop: threading.Event | None = None) -> Result | None:
        self._limiter.take()
        return self._delegate.scan(request, stop)


def _offer(out: queue.Queue, item: Any, stop: threading.Event) -> None:
    while not stop.is_set():
        try:
            out.put(item, timeout=_POLL_INTERVAL)
            return
        except queue.Full:
            continue


def _read_errors(errors: queue.Queue, done: threading.Event,
                 stop: threading.Event) -> Iterator[BaseException]:
    while True:
        try:
            error = errors.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            # every error is queued before ``done`` is set
            if (done.is_set() and errors.empty()) or stop.is_set():
                return
            continue
        yield error


class GenericEngine:
    """Runs a scanner over every request with a pool of worker threads."""

    def __init__(self, reqgen: _RequestGenerator, scanner: _Scanner,
                 results: ResultQueue, worker_count: int = 100) -> None:
        self._reqgen = reqgen
        self._scanner = scanner
        self._results = results
        self._worker_count = worker_count

    def results(self) -> ResultQueue:
        return self._results

    def start(self, scan_range: ScanRange, stop: threading.Event | None = None) -> EngineRun:
        stop = stop if stop is not None else threading.Event()
        done = threading.Event()
        try:
            requests = iter(self._reqgen.generate_requests(scan_range))
        except Exception as exc:  # reported as the run's only error
            done.set()
            return EngineRun(done, iter([exc]))

        errors: queue.Queue = queue.Queue(maxsize=_ERROR_BUFFER)
        lock = threading.Lock()
        workers = [
            threading.Thread(target=self._work, args=(requests, lock, errors, stop), daemon=True)
            for _ in range(self._worker_count)
        ]
        for worker in workers:
            worker.start()

        def supervise() -> None:
            for worker in workers:
                worker.join()
            done.set()

        threading.Thread(target=supervise, daemon=True).start()
        return EngineRun(done, _read_errors(errors, done, stop))

    def _work(self, requests: Iterator[Request], lock: threading.Lock,
              errors: queue.Queue, stop: threading.Event) -> None:
        while not stop.is_set():
            with lock:
                request = next(requests, _END)
            if request is _END:
                return
            if request.err is not None:
                _offer(errors, request.err, stop)
                continue
            try:
                result = self._scanner.scan(request, stop)
            except Exception as exc:  # reported on the error stream
                _offer(errors, exc, stop)
                continue
            if result is not None:
                self._results.put(result)