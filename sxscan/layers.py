"""Encoding and decoding of Ethernet, IPv4, TCP, UDP and ICMPv4 headers."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass, field
from typing import Union

ETHERNET_TYPE_IPV4 = 0x0800

IP_PROTOCOL_ICMPV4 = 1
IP_PROTOCOL_TCP = 6
IP_PROTOCOL_UDP = 17

IPV4_EVIL_BIT = 4
IPV4_DONT_FRAGMENT = 2
IPV4_MORE_FRAGMENTS = 1

ICMPV4_TYPE_ECHO_REPLY = 0
ICMPV4_TYPE_DESTINATION_UNREACHABLE = 3
ICMPV4_TYPE_ECHO_REQUEST = 8
ICMPV4_TYPE_TIMESTAMP_REQUEST = 13
ICMPV4_CODE_NET = 0
ICMPV4_CODE_HOST = 1
ICMPV4_CODE_PORT = 3

TCP_OPTION_END = 0
TCP_OPTION_NOP = 1
TCP_OPTION_MSS = 2
TCP_OPTION_WINDOW_SCALE = 3
TCP_OPTION_SACK_PERMITTED = 4

_ZERO_MAC = bytes(6)
_ZERO_IP = ipaddress.IPv4Address(0)


class DecodeError(ValueError):
    """Raised when packet data is too short or malformed to decode."""


def _ipv4(value: object) -> ipaddress.IPv4Address:
    if value is None:
        return _ZERO_IP
    if isinstance(value, ipaddress.IPv4Address):
        return value
    address = ipaddress.ip_address(value)  # type: ignore[arg-type]
    if not isinstance(address, ipaddress.IPv4Address):
        raise ValueError(f"not an IPv4 address: {value}")
    return address


def _mac(value: bytes | None) -> bytes:
    if value is None:
        return _ZERO_MAC
    mac = bytes(value)
    if len(mac) != 6:
        raise ValueError(f"invalid MAC address length: {len(mac)}")
    return mac


@dataclass
class Ethernet:
    src_mac: bytes = _ZERO_MAC
    dst_mac: bytes = _ZERO_MAC
    ethernet_type: int = ETHERNET_TYPE_IPV4


@dataclass
class IPv4:
    src_ip: ipaddress.IPv4Address = _ZERO_IP
    dst_ip: ipaddress.IPv4Address = _ZERO_IP
    version: int = 4
    ihl: int = 5
    tos: int = 0
    length: int = 0
    id: int = 0
    flags: int = 0
    frag_offset: int = 0
    ttl: int = 64
    protocol: int = 0
    checksum: int = 0
    payload: bytes = b""


@dataclass
class TCPOption:
    kind: int
    data: bytes = b""


@dataclass
class TCP:
    src_port: int = 0
    dst_port: int = 0
    seq: int = 0
    ack_number: int = 0
    data_offset: int = 5
    fin: bool = False
    syn: bool = False
    rst: bool = False
    psh: bool = False
    ack: bool = False
    urg: bool = False
    ece: bool = False
    cwr: bool = False
    ns: bool = False
    window: int = 0
    checksum: int = 0
    urgent: int = 0
    options: list[TCPOption] = field(default_factory=list)
    payload: bytes = b""


@dataclass
class UDP:
    src_port: int = 0
    dst_port: int = 0
    length: int = 0
    checksum: int = 0
    payload: bytes = b""


@dataclass
class ICMPv4:
    type: int = 0
    code: int = 0
    checksum: int = 0
    id: int = 0
    seq: int = 0
    payload: bytes = b""


Layer = Union[Ethernet, IPv4, TCP, UDP, ICMPv4]


def internet_checksum(data: bytes) -> int:
    """The 16-bit one's complement checksum used by IPv4, TCP, UDP and ICMP."""
    if len(data) % 2:
        data += b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


def _pseudo_header(ip: IPv4 | None, protocol: int, length: int) -> bytes:
    if ip is None:
        raise ValueError("checksum needs an enclosing IPv4 layer")
    return (_ipv4(ip.src_ip).packed + _ipv4(ip.dst_ip).packed
            + struct.pack("!BBH", 0, protocol, length))


def _encode_ipv4(ip: IPv4, body: bytes, fix: bool, checksums: bool) -> bytes:
    ihl = 5 if fix else ip.ihl
    total = ihl * 4 + len(body) if fix else ip.length
    header = struct.pack(
        "!BBHHHBBH4s4s",
        (ip.version << 4) | (ihl & 0x0F), ip.tos, total & 0xFFFF, ip.id & 0xFFFF,
        ((ip.flags & 0x7) << 13) | (ip.frag_offset & 0x1FFF), ip.ttl & 0xFF,
        ip.protocol & 0xFF, 0, _ipv4(ip.src_ip).packed, _ipv4(ip.dst_ip).packed,
    )
    header = header.ljust(ihl * 4, b"\x00")
    checksum = internet_checksum(header) if checksums else ip.checksum
    return header[:10] + struct.pack("!H", checksum) + header[12:] + body


def _encode_options(options: list[TCPOption]) -> bytes:
    out = bytearray()
    for option in options:
        if option.kind in (TCP_OPTION_END, TCP_OPTION_NOP):
            out.append(option.kind)
        else:
            out += bytes([option.kind, len(option.data) + 2]) + option.data
    while len(out) % 4:
        out.append(TCP_OPTION_END)
    return bytes(out)


def _encode_tcp(tcp: TCP, body: bytes, ip: IPv4 | None, fix: bool, checksums: bool) -> bytes:
    options = _encode_options(tcp.options)
    offset = (20 + len(options)) // 4 if fix else tcp.data_offset
    flags = (tcp.cwr << 7 | tcp.ece << 6 | tcp.urg << 5 | tcp.ack << 4
             | tcp.psh << 3 | tcp.rst << 2 | tcp.syn << 1 | int(tcp.fin))
    segment = struct.pack(
        "!HHIIBBHHH", tcp.src_port, tcp.dst_port, tcp.seq & 0xFFFFFFFF,
        tcp.ack_number & 0xFFFFFFFF, (offset << 4) | int(tcp.ns), flags,
        tcp.window, 0, tcp.urgent,
    ) + options + body
    if checksums:
        checksum = internet_checksum(_pseudo_header(ip, IP_PROTOCOL_TCP, len(segment)) + segment)
    else:
        checksum = tcp.checksum
    return segment[:16] + struct.pack("!H", checksum) + segment[18:]


def _encode_udp(udp: UDP, body: bytes, ip: IPv4 | None, fix: bool, checksums: bool) -> bytes:
    length = 8 + len(body) if fix else udp.length
    datagram = struct.pack("!HHHH", udp.src_port, udp.dst_port, length & 0xFFFF, 0) + body
    if checksums:
        checksum = internet_checksum(
            _pseudo_header(ip, IP_PROTOCOL_UDP, len(datagram)) + datagram) or 0xFFFF
    else:
        checksum = udp.checksum
    return datagram[:6] + struct.pack("!H", checksum) + datagram[8:]


def _encode_icmp(icmp: ICMPv4, body: bytes, checksums: bool) -> bytes:
    message = struct.pack("!BBHHH", icmp.type, icmp.code, 0, icmp.id, icmp.seq) + body
    checksum = internet_checksum(message) if checksums else icmp.checksum
    return message[:2] + struct.pack("!H", checksum) + message[4:]


def serialize(layers: list[Layer], payload: bytes = b"", fix_lengths: bool = True,
              compute_checksums: bool = True) -> bytes:
    """Serialize the layers, outermost first, followed by ``payload``."""
    body = bytes(payload)
    for index in range(len(layers) - 1, -1, -1):
        layer = layers[index]
        enclosing = next((l for l in reversed(layers[:index]) if isinstance(l, IPv4)), None)
        if isinstance(layer, Ethernet):
            body = (_mac(layer.dst_mac) + _mac(layer.src_mac)
                    + struct.pack("!H", layer.ethernet_type) + body)
        elif isinstance(layer, IPv4):
            body = _encode_ipv4(layer, body, fix_lengths, compute_checksums)
        elif isinstance(layer, TCP):
            body = _encode_tcp(layer, body, enclosing, fix_lengths, compute_checksums)
        elif isinstance(layer, UDP):
            body = _encode_udp(layer, body, enclosing, fix_lengths, compute_checksums)
        elif isinstance(layer, ICMPv4):
            body = _encode_icmp(layer, body, compute_checksums)
        else:
            raise TypeError(f"unsupported layer: {type(layer).__name__}")
    return body


def _decode_ethernet(data: bytes) -> tuple[Ethernet, bytes]:
    if len(data) < 14:
        raise DecodeError("ethernet frame too short")
    (ethernet_type,) = struct.unpack("!H", data[12:14])
    return Ethernet(src_mac=data[6:12], dst_mac=data[0:6], ethernet_type=ethernet_type), data[14:]


def _decode_ipv4(data: bytes) -> IPv4:
    if len(data) < 20:
        raise DecodeError("ipv4 header too short")
    (vihl, tos, length, ident, flags_frag, ttl, protocol, checksum,
     src, dst) = struct.unpack("!BBHHHBBH4s4s", data[:20])
    version, ihl = vihl >> 4, vihl & 0x0F
    if version != 4:
        raise DecodeError(f"invalid ip version {version}")
    if ihl < 5 or len(data) < ihl * 4:
        raise DecodeError(f"invalid ip header length {ihl}")
    if length < ihl * 4:
        raise DecodeError(f"invalid ip total length {length}")
    return IPv4(
        src_ip=ipaddress.IPv4Address(src), dst_ip=ipaddress.IPv4Address(dst),
        version=version, ihl=ihl, tos=tos, length=length, id=ident,
        flags=flags_frag >> 13, frag_offset=flags_frag & 0x1FFF, ttl=ttl,
        protocol=protocol, checksum=checksum, payload=data[ihl * 4:length],
    )


def _decode_options(data: bytes) -> list[TCPOption]:
    options = []
    pos = 0
    while pos < len(data):
        kind = data[pos]
        if kind == TCP_OPTION_END:
            break
        if kind == TCP_OPTION_NOP:
            options.append(TCPOption(kind))
            pos += 1
            continue
        if pos + 1 >= len(data) or data[pos + 1] < 2 or pos + data[pos + 1] > len(data):
            raise DecodeError("invalid tcp option")
        length = data[pos + 1]
        options.append(TCPOption(kind, data[pos + 2:pos + length]))
        pos += length
    return options


def _decode_tcp(data: bytes) -> TCP:
    if len(data) < 20:
        raise DecodeError("tcp header too short")
    (src, dst, seq, ack_number, offset_ns, flags, window, checksum,
     urgent) = struct.unpack("!HHIIBBHHH", data[:20])
    offset = offset_ns >> 4
    if offset < 5 or len(data) < offset * 4:
        raise DecodeError(f"invalid tcp data offset {offset}")
    return TCP(
        src_port=src, dst_port=dst, seq=seq, ack_number=ack_number, data_offset=offset,
        fin=bool(flags & 0x01), syn=bool(flags & 0x02), rst=bool(flags & 0x04),
        psh=bool(flags & 0x08), ack=bool(flags & 0x10), urg=bool(flags & 0x20),
        ece=bool(flags & 0x40), cwr=bool(flags & 0x80), ns=bool(offset_ns & 0x01),
        window=window, checksum=checksum, urgent=urgent,
        options=_decode_options(data[20:offset * 4]), payload=data[offset * 4:],
    )


def _decode_udp(data: bytes) -> UDP:
    if len(data) < 8:
        raise DecodeError("udp header too short")
    src, dst, length, checksum = struct.unpack("!HHHH", data[:8])
    return UDP(src_port=src, dst_port=dst, length=length, checksum=checksum, payload=data[8:])


def _decode_icmp(data: bytes) -> ICMPv4:
    if len(data) < 8:
        raise DecodeError("icmp header too short")
    typ, code, checksum, ident, seq = struct.unpack("!BBHHH", data[:8])
    return ICMPv4(type=typ, code=code, checksum=checksum, id=ident, seq=seq, payload=data[8:])


_TRANSPORTS = {
    IP_PROTOCOL_TCP: _decode_tcp,
    IP_PROTOCOL_UDP: _decode_udp,
    IP_PROTOCOL_ICMPV4: _decode_icmp,
}


def decode(data: bytes, link: str = "ethernet") -> list[Layer]:
    """Decode the known layers of a packet starting at ``link`` ("ethernet" or "ipv4").

    Decoding stops quietly at the first layer of an unsupported type.
    """
    if link not in ("ethernet", "ipv4"):
        raise ValueError(f"unknown link type: {link}")
    decoded: list[Layer] = []
    data = bytes(data)
    if link == "ethernet":
        eth, data = _decode_ethernet(data)
        decoded.append(eth)
        if eth.ethernet_type != ETHERNET_TYPE_IPV4:
            return decoded
    ip = _decode_ipv4(data)
    decoded.append(ip)
    transport = _TRANSPORTS.get(ip.protocol)
    if transport is not None:
        decoded.append(transport(ip.payload))
    return decoded