"""UDP scanning: closed ports answer with ICMP port unreachable (RFC 1122 4.1.3.1)."""

from __future__ import annotations

import random
import threading
from collections.abc import Iterator
from typing import Any, Protocol

from sxscan.generator import BufferData
from sxscan.icmp import PacketProcessor
from sxscan.layers import IPV4_DONT_FRAGMENT, IP_PROTOCOL_UDP, UDP, Ethernet, IPv4, serialize
from sxscan.requests import Request, ScanRange
from sxscan.results import ResultQueue

SCAN_TYPE = "udp"

_EPHEMERAL_LOW = 32768
_EPHEMERAL_HIGH = 60999


class _PacketSource(Protocol):
    def packets(self, scan_range: ScanRange,
                stop: threading.Event | None = None) -> Iterator[BufferData]: ...


class ScanMethod:
    """UDP scan: packets from a source, results from ICMP replies."""

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
    """Builds UDP probe packets."""

    def __init__(self, ttl: int = 64, length: int = 0, proto: int = IP_PROTOCOL_UDP,
                 flags: int = IPV4_DONT_FRAGMENT, payload: bytes = b"",
                 vpn_mode: bool = False) -> None:
        self.ttl = ttl
        self.length = length
        self.proto = proto
        self.flags = flags
        self.payload = bytes(payload)
        self.vpn_mode = vpn_mode

    def fill(self, request: Request) -> bytes:
        ip = IPv4(
            src_ip=request.src_ip, dst_ip=request.dst_ip,  # type: ignore[arg-type]
            id=random.randint(1, 65535), flags=self.flags, ihl=5, ttl=self.ttl,
            length=self.length, protocol=self.proto,
        )
        datagram = UDP(src_port=random.randint(_EPHEMERAL_LOW, _EPHEMERAL_HIGH),
                       dst_port=request.dst_port)
        layers: list[Any] = [ip, datagram]
        if not self.vpn_mode:
            layers.insert(0, Ethernet(src_mac=request.src_mac, dst_mac=request.dst_mac))
        return serialize(layers, self.payload, fix_lengths=self.length == 0)