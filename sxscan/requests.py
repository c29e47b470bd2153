"""Generation of scan requests from IP subnets, port ranges and files."""

from __future__ import annotations

import dataclasses
import ipaddress
import json
import threading
from collections.abc import Callable, Container, Iterable, Iterator
from dataclasses import dataclass, field
from typing import IO, Any, Protocol, Union

from sxscan.ranges import RangeIterator, RangeSizeError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
OpenFile = Callable[[], IO[Any]]


class ScanError(Exception):
    """Base class of the errors reported while generating requests."""

    default_message = "scan error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class PortRangeError(ScanError):
    default_message = "invalid port range"


class SubnetError(ScanError):
    default_message = "invalid subnet"


class InvalidIPError(ScanError):
    default_message = "invalid ip"


class InvalidPortError(ScanError):
    default_message = "invalid port"


class InvalidJSONError(ScanError):
    default_message = "invalid json"


@dataclass(frozen=True)
class PortRange:
    start_port: int
    end_port: int


@dataclass
class ScanRange:
    interface: str | None = None
    dst_subnet: IPNetwork | None = None
    src_ip: IPAddress | None = None
    src_mac: bytes | None = None
    ports: list[PortRange] = field(default_factory=list)


@dataclass
class Request:
    meta: dict[str, Any] = field(default_factory=dict)
    src_ip: IPAddress | None = None
    dst_ip: IPAddress | None = None
    src_mac: bytes | None = None
    dst_mac: bytes | None = None
    dst_port: int = 0
    err: BaseException | None = None


class RequestGenerator(Protocol):
    def generate_requests(self, scan_range: ScanRange) -> Iterator[Request]: ...


class _IPSource(Protocol):
    def ips(self, scan_range: ScanRange) -> Iterator[IPAddress | Exception]: ...


class _PortSource(Protocol):
    def ports(self, scan_range: ScanRange) -> Iterator[int | Exception]: ...


def _decode_fields(data: str | bytes) -> dict[str, Any]:
    """Decode the known fields of an ``{"ip": ..., "port": ...}`` object."""
    try:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        obj = json.loads(data)
    except ValueError as exc:
        raise InvalidJSONError() from exc
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise InvalidJSONError()
    fields: dict[str, Any] = {}
    ip = obj.get("ip")
    if ip is not None:
        if not isinstance(ip, str):
            raise InvalidJSONError()
        fields["ip"] = ip
    port = obj.get("port")
    if port is not None:
        if not isinstance(port, int) or isinstance(port, bool):
            raise InvalidJSONError()
        fields["port"] = port
    return fields


@dataclass
class IPPort:
    ip: str = ""
    port: int = 0

    def to_json(self) -> str:
        return json.dumps({"ip": self.ip, "port": self.port},
                          separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def from_json(data: str | bytes) -> IPPort:
        return IPPort(**_decode_fields(data))


def is_valid_port(port: int) -> bool:
    return 0 < port <= 0xFFFF


def _parse_ip(text: str) -> IPAddress | None:
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def _lines(stream: IO[Any]) -> Iterator[str | bytes]:
    for line in stream:
        newline, carriage = ("\n", "\r") if isinstance(line, str) else (b"\n", b"\r")
        if line.endswith(newline):
            line = line[:-1]
        if line.endswith(carriage):
            line = line[:-1]
        yield line


def _validate_ports(ports: list[PortRange]) -> None:
    if not ports:
        raise PortRangeError()
    if any(pr.start_port > pr.end_port for pr in ports):
        raise PortRangeError()


class PortGenerator:
    """Yields every port of the range's port ranges, each range shuffled."""

    def ports(self, scan_range: ScanRange) -> Iterator[int | Exception]:
        _validate_ports(scan_range.ports)
        return self._generate(list(scan_range.ports))

    @staticmethod
    def _generate(port_ranges: list[PortRange]) -> Iterator[int | Exception]:
        for pr in port_ranges:
            try:
                it = RangeIterator(pr.end_port - pr.start_port + 1)
            except RangeSizeError as exc:
                yield exc
                continue
            base = pr.start_port - 1
            for offset in it:
                yield base + offset


class IPGenerator:
    """Yields every address of the destination subnet in shuffled order."""

    def ips(self, scan_range: ScanRange) -> Iterator[IPAddress | Exception]:
        subnet = scan_range.dst_subnet
        if subnet is None:
            raise SubnetError()
        it = RangeIterator(subnet.num_addresses)
        base = int(subnet.network_address) - 1
        version = subnet.version
        return (ipaddress.ip_address(base + i) if version == 4
                else ipaddress.IPv6Address(base + i) for i in it)


class FileIPGenerator:
    """Yields the ``ip`` field of every JSON line of a file."""

    def __init__(self, open_file: OpenFile) -> None:
        self._open_file = open_file

    def ips(self, scan_range: ScanRange | None = None) -> Iterator[IPAddress | Exception]:
        return self._read(self._open_file())

    @staticmethod
    def _read(stream: IO[Any]) -> Iterator[IPAddress | Exception]:
        with stream:
            ip_text = ""
            try:
                for line in _lines(stream):
                    try:
                        fields = _decode_fields(line)
                    except InvalidJSONError as exc:
                        yield exc
                        return
                    # a line without "ip" keeps the previous line's value
                    ip_text = fields.get("ip", ip_text)
                    ip = _parse_ip(ip_text)
                    if ip is None:
                        yield InvalidIPError()
                        return
                    yield ip
            except OSError as exc:
                yield exc


class IPPortGenerator:
    """Combines every port with every IP address, port by port."""

    def __init__(self, ipgen: _IPSource, portgen: _PortSource) -> None:
        self._ipgen = ipgen
        self._portgen = portgen

    def generate_requests(self, scan_range: ScanRange) -> Iterator[Request]:
        ports = self._portgen.ports(scan_range)
        ips = self._ipgen.ips(scan_range)
        return self._generate(scan_range, ports, ips)

    def _generate(self, scan_range: ScanRange, ports: Iterable[int | Exception],
                  ips: Iterable[IPAddress | Exception]) -> Iterator[Request]:
        for port in ports:
            if isinstance(port, Exception):
                yield Request(err=port)
                continue
            for ip in ips:
                if isinstance(ip, Exception):
                    yield Request(src_ip=scan_range.src_ip, src_mac=scan_range.src_mac,
                                  dst_port=port, err=ip)
                else:
                    yield Request(src_ip=scan_range.src_ip, src_mac=scan_range.src_mac,
                                  dst_ip=ip, dst_port=port)
            try:
                ips = self._ipgen.ips(scan_range)
            except (ScanError, ValueError, OSError) as exc:
                yield Request(err=exc)
                return


class IPRequestGenerator:
    """Produces one request per IP address, without ports."""

    def __init__(self, ipgen: _IPSource) -> None:
        self._ipgen = ipgen

    def generate_requests(self, scan_range: ScanRange) -> Iterator[Request]:
        ips = self._ipgen.ips(scan_range)
        return self._generate(scan_range, ips)

    @staticmethod
    def _generate(scan_range: ScanRange,
                  ips: Iterable[IPAddress | Exception]) -> Iterator[Request]:
        for ip in ips:
            if isinstance(ip, Exception):
                yield Request(src_ip=scan_range.src_ip, src_mac=scan_range.src_mac, err=ip)
            else:
                yield Request(src_ip=scan_range.src_ip, src_mac=scan_range.src_mac, dst_ip=ip)


class FileIPPortGenerator:
    """Produces requests from a file of ``{"ip": ..., "port": ...}`` JSON lines."""

    def __init__(self, open_file: OpenFile) -> None:
        self._open_file = open_file

    def generate_requests(self, scan_range: ScanRange) -> Iterator[Request]:
        return self._read(self._open_file(), scan_range)

    @staticmethod
    def _read(stream: IO[Any], scan_range: ScanRange) -> Iterator[Request]:
        with stream:
            try:
                for line in _lines(stream):
                    try:
                        entry = IPPort.from_json(line)
                    except InvalidJSONError as exc:
                        yield Request(err=exc)
                        return
                    ip = _parse_ip(entry.ip)
                    if ip is None:
                        yield Request(err=InvalidIPError())
                        continue
                    if not is_valid_port(entry.port):
                        yield Request(err=InvalidPortError())
                        continue
                    yield Request(src_ip=scan_range.src_ip, src_mac=scan_range.src_mac,
                                  dst_ip=ip, dst_port=entry.port)
            except OSError as exc:
                yield Request(err=exc)


class LiveRequestGenerator:
    """Repeats the delegate's requests forever, pausing between passes."""

    def __init__(self, delegate: RequestGenerator, rescan_timeout: float,
                 stop: threading.Event | None = None) -> None:
        self._delegate = delegate
        self._rescan_timeout = rescan_timeout
        self._stop = stop if stop is not None else threading.Event()

    def generate_requests(self, scan_range: ScanRange) -> Iterator[Request]:
        requests = self._delegate.generate_requests(scan_range)
        return self._generate(scan_range, requests)

    def _generate(self, scan_range: ScanRange,
                  requests: Iterable[Request]) -> Iterator[Request]:
        while not self._stop.is_set():
            for request in requests:
                if self._stop.is_set():
                    return
                yield request
            if self._stop.wait(self._rescan_timeout):
                return
            try:
                requests = self._delegate.generate_requests(scan_range)
            except (ScanError, ValueError, OSError):
                # nothing more can be produced; wait until asked to stop
                self._stop.wait()
                return


class FilterIPRequestGenerator:
    """Drops the delegate's requests whose destination is in ``exclude_ips``."""

    def __init__(self, delegate: RequestGenerator, exclude_ips: Container[Any]) -> None:
        self._delegate = delegate
        self._exclude_ips = exclude_ips

    def generate_requests(self, scan_range: ScanRange) -> Iterator[Request]:
        requests = self._delegate.generate_requests(scan_range)
        return self._generate(requests)

    def _generate(self, requests: Iterable[Request]) -> Iterator[Request]:
        for request in requests:
            try:
                excluded = request.dst_ip in self._exclude_ips
            except Exception as exc:  # a failing container marks the request
                yield dataclasses.replace(request, err=exc)
                continue
            if not excluded:
                yield request