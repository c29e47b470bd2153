"""TCP scanning: probes with chosen flags and the processing of TCP replies."""

from __future__ import annotations

import json
import random
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Protocol

from sxscan.generator import BufferData
from sxscan.layers import (
    IPV4_DONT_FRAGMENT, IP_PROTOCOL_TCP, TCP_OPTION_MSS, TCP_OPTION_SACK_PERMITTED,
    TCP_OPTION_WINDOW_SCALE, TCP, Ethernet, IPv4, TCPOption, decode, serialize,
)
from sxscan.requests import Request, ScanRange
from sxscan.results import ResultQueue

SYN_SCAN_TYPE = "tcpsyn"
FIN_SCAN_TYPE = "tcpfin"
NULL_SCAN_TYPE = "tcpnull"
XMAS_SCAN_TYPE = "tcpxmas"
FLAGS_SCAN_TYPE = "tcpflags"

# Linux default ephemeral port range: 32768-60999
_EPHEMERAL_LOW = 32768
_EPHEMERAL_HIGH = 60999

PacketFilter = Callable[[TCP], bool]
PacketFlags = Callable[[TCP], str]


class _PacketSource(Protocol):
    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]: ...


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"invalid string value: {value!r}")
    return value


def _uint16(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 0xFFFF:
        raise ValueError(f"invalid uint16 value: {value!r}")
    return value


@dataclass
class ScanResult:
    scan_type: str = ""
    ip: str = ""
    port: int = 0
    flags: str = ""

    def __str__(self) -> str:
        return f"{self.ip:<20} {self.port:<5} {self.flags}"

    def id(self) -> str:
        return f"{self.ip}:{self.port}"

    def to_json(self) -> str:
        obj: dict[str, object] = {"scan": self.scan_type, "ip": self.ip, "port": self.port}
        if self.flags:
            obj["flags"] = self.flags
        return json.dumps(obj, separators=(",", ":"))

    @staticmethod
    def from_json(data: str | bytes) -> ScanResult:
        obj = json.loads(data)
        result = ScanResult()
        if obj is None:
            return result
        if not isinstance(obj, dict):
            raise ValueError("expected a JSON object")
        if obj.get("scan") is not None:
            result.scan_type = _string(obj["scan"])
        if obj.get("ip") is not None:
            result.ip = _string(obj["ip"])
        if obj.get("port") is not None:
            result.port = _uint16(obj["port"])
        if obj.get("flags") is not None:
            result.flags = _string(obj["flags"])
        return result


def true_filter(segment: TCP) -> bool:
    """Accept every segment."""
    return True


def empty_flags(segment: TCP) -> str:
    """Report no flags."""
    return ""


def all_flags(segment: TCP) -> str:
    """The segment's set flags as letters, in the order s a f r p u e c n."""
    letters = (
        (segment.syn, "s"), (segment.ack, "a"), (segment.fin, "f"),
        (segment.rst, "r"), (segment.psh, "p"), (segment.urg, "u"),
        (segment.ece, "e"), (segment.cwr, "c"), (segment.ns, "n"),
    )
    return "".join(letter for is_set, letter in letters if is_set)


def _valid_packet(layers: list[Any]) -> bool:
    kinds = [type(layer) for layer in layers]
    return kinds in ([Ethernet, IPv4, TCP], [IPv4, TCP])


class ScanMethod:
    """TCP scan: packets from a source, results from matching TCP replies."""

    def __init__(self, scan_type: str, source: _PacketSource | None, results: ResultQueue,
                 packet_filter: PacketFilter = true_filter,
                 packet_flags: PacketFlags = all_flags, vpn_mode: bool = False) -> None:
        self._scan_type = scan_type
        self._source = source
        self._results = results
        self._packet_filter = packet_filter
        self._packet_flags = packet_flags
        self._link = "ipv4" if vpn_mode else "ethernet"

    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]:
        if self._source is None:
            raise ValueError("no packet source configured")
        return self._source.packets(scan_range, stop)

    def results(self) -> ResultQueue:
        return self._results

    def process_packet_data(self, data: bytes) -> None:
        """Record a result for a matching TCP segment; raises DecodeError on bad data."""
        layers = decode(data, self._link)
        if not _valid_packet(layers):
            return
        ip, segment = layers[-2], layers[-1]
        if self._packet_filter(segment):
            self._results.put(ScanResult(
                scan_type=self._scan_type, ip=str(ip.src_ip),
                port=segment.src_port, flags=self._packet_flags(segment),
            ))


class PacketFiller:
    """Builds TCP probe packets that look like a Linux client's."""

    def __init__(self, syn: bool = False, ack: bool = False, fin: bool = False,
                 rst: bool = False, psh: bool = False, urg: bool = False,
                 ece: bool = False, cwr: bool = False, ns: bool = False,
                 vpn_mode: bool = False) -> None:
        self.syn = syn
        self.ack = ack
        self.fin = fin
        self.rst = rst
        self.psh = psh
        self.urg = urg
        self.ece = ece
        self.cwr = cwr
        self.ns = ns
        self.vpn_mode = vpn_mode

    def fill(self, request: Request) -> bytes:
        ip = IPv4(
            src_ip=request.src_ip, dst_ip=request.dst_ip,  # type: ignore[arg-type]
            id=random.randint(1, 65535), flags=IPV4_DONT_FRAGMENT, ttl=64,
            protocol=IP_PROTOCOL_TCP,
        )
        segment = TCP(
            src_port=random.randint(_EPHEMERAL_LOW, _EPHEMERAL_HIGH),
            dst_port=request.dst_port,
            seq=random.getrandbits(32),
            syn=self.syn, ack=self.ack, fin=self.fin, rst=self.rst, psh=self.psh,
            urg=self.urg, ece=self.ece, cwr=self.cwr, ns=self.ns,
            window=64240,
            options=[
                TCPOption(TCP_OPTION_MSS, bytes([0x05, 0xB4])),  # 1460
                TCPOption(TCP_OPTION_SACK_PERMITTED),
                TCPOption(TCP_OPTION_WINDOW_SCALE, bytes([7])),
            ],
        )
        layers: list[Any] = [ip, segment]
        if not self.vpn_mode:
            layers.insert(0, Ethernet(src_mac=request.src_mac, dst_mac=request.dst_mac))
        return serialize(layers, fix_lengths=True, compute_checksums=True)