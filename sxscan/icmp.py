"""ICMP scanning: echo-style probes and the processing of ICMP replies."""

from __future__ import annotations

import json
import os
import random
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Protocol

from sxscan.generator import BufferData
from sxscan.layers import (
    ICMPV4_TYPE_ECHO_REQUEST, IPV4_DONT_FRAGMENT, IP_PROTOCOL_ICMPV4,
    Ethernet, ICMPv4, IPv4, decode, serialize,
)
from sxscan.requests import Request, ScanRange
from sxscan.results import ResultQueue

SCAN_TYPE = "icmp"


class _PacketSource(Protocol):
    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]: ...


@dataclass
class Response:
    type: int = 0
    code: int = 0


def _uint8(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 0xFF:
        raise ValueError(f"invalid uint8 value: {value!r}")
    return value


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"invalid string value: {value!r}")
    return value


@dataclass
class ScanResult:
    scan_type: str = SCAN_TYPE
    ip: str = ""
    ttl: int = 0
    icmp: Response | None = None

    def __str__(self) -> str:
        icmp = self.icmp or Response()
        return f"{self.ip:<20} {icmp.type:<5} {icmp.code:<5} {self.ttl:<5}"

    def id(self) -> str:
        return self.ip

    def to_json(self) -> str:
        icmp = None if self.icmp is None else {"type": self.icmp.type, "code": self.icmp.code}
        return json.dumps({"scan": self.scan_type, "ip": self.ip, "ttl": self.ttl,
                           "icmp": icmp}, separators=(",", ":"))

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
        if obj.get("ttl") is not None:
            result.ttl = _uint8(obj["ttl"])
        icmp = obj.get("icmp")
        if icmp is not None:
            if not isinstance(icmp, dict):
                raise ValueError("icmp must be an object")
            result.icmp = Response(
                type=_uint8(icmp["type"]) if icmp.get("type") is not None else 0,
                code=_uint8(icmp["code"]) if icmp.get("code") is not None else 0,
            )
        return result


def _valid_packet(layers: list[Any]) -> bool:
    kinds = [type(layer) for layer in layers]
    return kinds in ([Ethernet, IPv4, ICMPv4], [IPv4, ICMPv4])


class PacketProcessor:
    """Turns captured ICMP packets into scan results."""

    def __init__(self, scan_type: str, results: ResultQueue, vpn_mode: bool = False) -> None:
        self._scan_type = scan_type
        self._results = results
        self._link = "ipv4" if vpn_mode else "ethernet"

    def results(self) -> ResultQueue:
        return self._results

    def process_packet_data(self, data: bytes) -> None:
        """Record a result for an ICMP packet; raises DecodeError on bad data."""
        layers = decode(data, self._link)
        if not _valid_packet(layers):
            return
        ip, icmp = layers[-2], layers[-1]
        self._results.put(ScanResult(
            scan_type=self._scan_type, ip=str(ip.src_ip), ttl=ip.ttl,
            icmp=Response(type=icmp.type, code=icmp.code),
        ))


class ScanMethod:
    """ICMP scan: packets from a source, results from ICMP replies."""

    def __init__(self, source: _PacketSource | None, results: ResultQueue,
                 vpn_mode: bool = False) -> None:
        self._source = source
        self._processor = PacketProcessor(SCAN_TYPE, results, vpn_mode)

    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]:
        if self._source is None:
            raise ValueError("no packet source configured")
        return self._source.packets(scan_range, stop)

    def process_packet_data(self, data: bytes) -> None:
        self._processor.process_packet_data(data)

    def results(self) -> ResultQueue:
        return self._processor.results()


class PacketFiller:
    """Builds ICMP probe packets."""

    def __init__(self, ttl: int = 64, length: int = 0, proto: int = IP_PROTOCOL_ICMPV4,
                 flags: int = IPV4_DONT_FRAGMENT, typ: int = ICMPV4_TYPE_ECHO_REQUEST,
                 code: int = 0, payload: bytes | None = None, vpn_mode: bool = False) -> None:
        self.ttl = ttl
        self.length = length
        self.proto = proto
        self.flags = flags
        self.typ = typ
        self.code = code
        self.payload = os.urandom(48) if payload is None else bytes(payload)
        self.vpn_mode = vpn_mode

    def fill(self, request: Request) -> bytes:
        ip = IPv4(
            src_ip=request.src_ip, dst_ip=request.dst_ip,  # type: ignore[arg-type]
            id=random.randint(1, 65535), flags=self.flags, ihl=5, ttl=self.ttl,
            length=self.length, protocol=self.proto,
        )
        icmp = ICMPv4(type=self.typ, code=self.code, id=random.randint(1, 65535), seq=1)
        layers: list[Any] = [ip, icmp]
        if not self.vpn_mode:
            layers.insert(0, Ethernet(src_mac=request.src_mac, dst_mac=request.dst_mac))
        return serialize(layers, self.payload, fix_lengths=self.length == 0)