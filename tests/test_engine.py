import ipaddress
import threading
from dataclasses import dataclass

from sxscan.engine import (
    GenericEngine,
    PacketEngine,
    PacketSource,
    RateLimitScanner,
    merge_errors,
)
from sxscan.generator import BufferData
from sxscan.requests import Request, ScanError, ScanRange
from sxscan.results import ResultQueue


@dataclass
class _Result:
    ident: str

    def id(self) -> str:
        return self.ident

    def to_json(self) -> str:
        return self.ident


class _RequestGenerator:
    def __init__(self, requests=None, error=None):
        self.requests = requests or []
        self.error = error

    def generate_requests(self, scan_range):
        if self.error is not None:
            raise self.error
        return iter(self.requests)


class _Scanner:
    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.log = []

    def scan(self, request, stop=None):
        self.log.append("scan")
        outcome = self.outcomes[str(request.dst_ip)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _request(ip: str) -> Request:
    return Request(dst_ip=ipaddress.ip_address(ip), dst_port=22)


def _blocked(release: threading.Event):
    release.wait()
    yield RuntimeError("late")


def test_merge_errors_empty():
    assert list(merge_errors(iter([]), iter([]))) == []


def test_merge_errors_one_and_empty():
    error = RuntimeError("test error")
    assert list(merge_errors(iter([error]), iter([]))) == [error]


def test_merge_errors_two():
    first, second = RuntimeError("one"), RuntimeError("two")
    merged = list(merge_errors(iter([first]), iter([second])))
    assert sorted(str(e) for e in merged) == ["one", "two"]


def test_merge_errors_stop():
    release = threading.Event()
    stop = threading.Event()
    stop.set()
    try:
        assert list(merge_errors(_blocked(release), _blocked(release), stop=stop)) == []
    finally:
        release.set()


def test_packet_engine_collects_all_errors():
    class Source:
        def packets(self, scan_range, stop=None):
            return iter([])

    class Sender:
        def send_packets(self, packets, stop):
            done = threading.Event()
            done.set()
            return done, iter([RuntimeError("send error")])

    class Receiver:
        def receive_packets(self, stop):
            return iter([RuntimeError("receive error")])

    engine = PacketEngine(Source(), Sender(), Receiver())
    run = engine.start(ScanRange(dst_subnet=ipaddress.ip_network("192.168.0.1/32")))
    assert run.wait(0)
    assert sorted(str(e) for e in run.errors()) == ["receive error", "send error"]


def test_packet_source_reports_generator_error():
    class PacketGen:
        def packets(self, requests, stop=None):
            raise AssertionError("must not be called")

    source = PacketSource(_RequestGenerator(error=ScanError("generate error")), PacketGen())
    result = list(source.packets(ScanRange()))
    assert len(result) == 1
    assert str(result[0].err) == "generate error"


def test_packet_source_returns_data():
    requests = [_request("192.168.0.1")]
    data = BufferData(buf=b"\x01\x02")
    seen = []

    class PacketGen:
        def packets(self, reqs, stop=None):
            seen.append(list(reqs))
            return iter([data])

    source = PacketSource(_RequestGenerator(requests), PacketGen())
    assert list(source.packets(ScanRange())) == [data]
    assert seen == [requests]


def test_rate_limit_scanner_takes_before_each_scan():
    result = _Result("id1")
    scanner = _Scanner({"192.168.0.1": result})

    class Limiter:
        def take(self):
            scanner.log.append("take")

    rate_scanner = RateLimitScanner(scanner, Limiter())
    got = [rate_scanner.scan(_request("192.168.0.1")) for _ in range(2)]
    assert got == [result, result]
    assert scanner.log == ["take", "scan", "take", "scan"]


def test_generic_engine_request_generator_error():
    engine = GenericEngine(_RequestGenerator(error=ScanError("generate error")),
                           _Scanner({}), ResultQueue(threading.Event(), 10))
    run = engine.start(ScanRange())
    assert run.wait(1)
    assert [str(e) for e in run.errors()] == ["generate error"]


def test_generic_engine_request_error():
    engine = GenericEngine(_RequestGenerator([Request(err=RuntimeError("request error"))]),
                           _Scanner({}), ResultQueue(threading.Event(), 10))
    run = engine.start(ScanRange())
    assert run.wait(3)
    assert [str(e) for e in run.errors()] == ["request error"]


def test_generic_engine_scanner_error():
    scanner = _Scanner({"192.168.0.1": RuntimeError("scan error")})
    engine = GenericEngine(_RequestGenerator([_request("192.168.0.1")]), scanner,
                           ResultQueue(threading.Event(), 10))
    run = engine.start(ScanRange())
    assert run.wait(3)
    assert [str(e) for e in run.errors()] == ["scan error"]


def test_generic_engine_results():
    stop = threading.Event()
    results = ResultQueue(stop, 10)
    scanner = _Scanner({"192.168.0.1": _Result("id1"), "192.168.0.2": _Result("id2")})
    reqgen = _RequestGenerator([_request("192.168.0.1"), _request("192.168.0.2")])
    engine = GenericEngine(reqgen, scanner, results, worker_count=10)
    run = engine.start(ScanRange(), stop)
    assert run.wait(3)
    got = sorted(engine.results().get(timeout=1).id() for _ in range(2))
    assert got == ["id1", "id2"]
    assert list(run.errors()) == []
    stop.set()
    assert engine.results().get(timeout=1) is None


def test_generic_engine_skips_empty_results():
    stop = threading.Event()
    results = ResultQueue(stop, 10)
    engine = GenericEngine(_RequestGenerator([_request("10.0.0.1")]),
                           _Scanner({"10.0.0.1": None}), results, worker_count=2)
    run = engine.start(ScanRange(), stop)
    assert run.wait(3)
    stop.set()
    assert results.get() is None