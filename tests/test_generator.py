import ipaddress
import itertools
import os
import threading

import pytest

from sxscan.generator import (
    BufferData,
    PacketGenerator,
    PacketMultiGenerator,
    merge_streams,
)
from sxscan.requests import Request

NUM_WORKERS = os.cpu_count() or 4


class _Filler:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[Request] = []
        self.error = error

    def fill(self, request: Request) -> bytes:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return f"{request.dst_ip}:{request.dst_port}".encode()


def _request(port: int = 888) -> Request:
    return Request(dst_ip=ipaddress.ip_address("192.168.0.1"), dst_port=port)


def _make(kind: str, filler: _Filler):
    if kind == "single":
        return PacketGenerator(filler)
    return PacketMultiGenerator(filler, NUM_WORKERS)


def _blocked(release: threading.Event):
    release.wait()
    yield BufferData()


KINDS = ["single", "multi"]


@pytest.mark.parametrize("kind", KINDS)
def test_empty_input(kind):
    filler = _Filler()
    assert list(_make(kind, filler).packets([])) == []
    assert filler.calls == []


@pytest.mark.parametrize("kind", KINDS)
def test_one_request(kind):
    filler = _Filler()
    results = list(_make(kind, filler).packets([_request()]))
    assert results == [BufferData(buf=b"192.168.0.1:888")]
    assert filler.calls == [_request()]


@pytest.mark.parametrize("kind", KINDS)
def test_two_requests(kind):
    filler = _Filler()
    results = list(_make(kind, filler).packets([_request(888), _request(889)]))
    assert all(r.err is None for r in results)
    assert sorted(r.buf for r in results) == [b"192.168.0.1:888", b"192.168.0.1:889"]


@pytest.mark.parametrize("kind", KINDS)
def test_request_error_is_passed_on(kind):
    filler = _Filler()
    error = RuntimeError("request error")
    results = list(_make(kind, filler).packets([Request(err=error)]))
    assert results == [BufferData(err=error)]
    assert filler.calls == []


@pytest.mark.parametrize("kind", KINDS)
def test_fill_error_is_reported(kind):
    error = RuntimeError("failed request")
    results = list(_make(kind, _Filler(error)).packets([_request()]))
    assert len(results) == 1
    assert results[0].err is error
    assert results[0].buf is None


@pytest.mark.parametrize("kind", KINDS)
def test_stop_ends_generation(kind):
    filler = _Filler()
    stop = threading.Event()
    stop.set()
    results = list(_make(kind, filler).packets(itertools.repeat(_request()), stop))
    assert results == []
    assert filler.calls == []


def test_merge_empty_streams():
    assert list(merge_streams(iter([]), iter([]))) == []


def test_merge_one_element_and_empty_stream():
    item = BufferData()
    assert list(merge_streams(iter([item]), iter([]))) == [item]


def test_merge_two_elements():
    a, b = BufferData(buf=b"a"), BufferData(buf=b"b")
    merged = list(merge_streams(iter([a]), iter([b])))
    assert sorted(r.buf for r in merged) == [b"a", b"b"]


def test_merge_exits_on_stop():
    release = threading.Event()
    stop = threading.Event()
    stop.set()
    try:
        assert list(merge_streams(_blocked(release), _blocked(release), stop=stop)) == []
    finally:
        release.set()