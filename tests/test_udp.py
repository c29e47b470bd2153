import ipaddress
import threading

import pytest

from sxscan.generator import BufferData
from sxscan.icmp import Response, ScanResult
from sxscan.layers import (
    ICMPV4_CODE_PORT, ICMPV4_TYPE_DESTINATION_UNREACHABLE, IPV4_DONT_FRAGMENT,
    IPV4_MORE_FRAGMENTS, IP_PROTOCOL_ICMPV4, IP_PROTOCOL_UDP, UDP, Ethernet, ICMPv4, IPv4,
    decode, serialize,
)
from sxscan.requests import Request, ScanRange
from sxscan.results import ResultQueue
from sxscan.udp import SCAN_TYPE, PacketFiller, ScanMethod

SRC_MAC = bytes([0x1, 0x2, 0x3, 0x4, 0x5, 0x6])
DST_MAC = bytes([0x10, 0x11, 0x12, 0x13, 0x14, 0x15])
SRC_IP = ipaddress.IPv4Address("192.168.0.3")
DST_IP = ipaddress.IPv4Address("192.168.0.2")


def _request():
    return Request(src_ip=SRC_IP, dst_ip=DST_IP, src_mac=SRC_MAC, dst_mac=DST_MAC,
                   dst_port=4567)


def _layer(layers, kind):
    return next(layer for layer in layers if isinstance(layer, kind))


def test_packet_filler_ethernet():
    layers = decode(PacketFiller().fill(_request()), "ethernet")
    assert [type(layer) for layer in layers] == [Ethernet, IPv4, UDP]
    eth, ip, datagram = layers
    assert eth.src_mac == SRC_MAC
    assert eth.dst_mac == DST_MAC
    assert ip.src_ip == SRC_IP
    assert ip.dst_ip == DST_IP
    assert ip.ttl == 64
    assert ip.ihl == 5
    assert ip.length == 20 + 8
    assert ip.protocol == IP_PROTOCOL_UDP
    assert ip.flags == IPV4_DONT_FRAGMENT
    assert 32768 <= datagram.src_port <= 60999
    assert datagram.dst_port == 4567
    assert datagram.payload == b""


def test_packet_filler_ipv4():
    layers = decode(PacketFiller(vpn_mode=True).fill(_request()), "ipv4")
    assert not any(isinstance(layer, Ethernet) for layer in layers)
    ip, datagram = layers
    assert ip.src_ip == SRC_IP
    assert ip.dst_ip == DST_IP
    assert ip.ttl == 64
    assert ip.ihl == 5
    assert ip.length == 20 + 8
    assert ip.protocol == IP_PROTOCOL_UDP
    assert ip.flags == IPV4_DONT_FRAGMENT
    assert 32768 <= datagram.src_port <= 60999
    assert datagram.dst_port == 4567
    assert datagram.payload == b""


def test_packet_filler_payload():
    layers = decode(PacketFiller(payload=b"abc").fill(_request()), "ethernet")
    eth, ip, datagram = layers
    assert eth.src_mac == SRC_MAC
    assert ip.ttl == 64
    assert ip.ihl == 5
    assert datagram.payload == b"abc"


def test_packet_filler_ttl():
    ip = _layer(decode(PacketFiller(ttl=37).fill(_request()), "ethernet"), IPv4)
    assert ip.ttl == 37
    assert ip.ihl == 5
    assert ip.src_ip == SRC_IP


def test_packet_filler_ip_total_length():
    ip = _layer(decode(PacketFiller(length=57).fill(_request()), "ethernet"), IPv4)
    assert ip.ihl == 5
    assert ip.length == 57


def test_packet_filler_ip_protocol():
    ip = _layer(decode(PacketFiller(proto=37).fill(_request()), "ethernet"), IPv4)
    assert ip.protocol == 37


def test_packet_filler_ip_flags():
    flags = IPV4_DONT_FRAGMENT | IPV4_MORE_FRAGMENTS
    ip = _layer(decode(PacketFiller(flags=flags).fill(_request()), "ethernet"), IPv4)
    assert ip.flags == flags


def _port_unreachable(vpn_mode):
    layers = [
        IPv4(src_ip=ipaddress.IPv4Address("192.168.0.2"),
             dst_ip=ipaddress.IPv4Address("192.168.0.3"),
             id=12345, flags=IPV4_DONT_FRAGMENT, ttl=64, protocol=IP_PROTOCOL_ICMPV4),
        ICMPv4(type=ICMPV4_TYPE_DESTINATION_UNREACHABLE, code=ICMPV4_CODE_PORT),
    ]
    if not vpn_mode:
        layers.insert(0, Ethernet(src_mac=SRC_MAC, dst_mac=DST_MAC))
    return serialize(layers)


@pytest.mark.parametrize("vpn_mode", [False, True])
def test_process_packet_data(vpn_mode):
    stop = threading.Event()
    results = ResultQueue(stop, 1000)
    sm = ScanMethod(None, results, vpn_mode)
    sm.process_packet_data(_port_unreachable(vpn_mode))
    result = sm.results().get(timeout=3)
    assert result == ScanResult(
        scan_type=SCAN_TYPE, ip="192.168.0.2", ttl=64,
        icmp=Response(type=ICMPV4_TYPE_DESTINATION_UNREACHABLE, code=ICMPV4_CODE_PORT),
    )
    stop.set()
    assert sm.results().get() is None


def test_packets_delegates_to_source():
    class Source:
        def packets(self, scan_range, stop=None):
            return iter([BufferData(buf=b"udp")])

    sm = ScanMethod(Source(), ResultQueue(threading.Event()))
    assert list(sm.packets(ScanRange())) == [BufferData(buf=b"udp")]


def test_packets_without_source():
    sm = ScanMethod(None, ResultQueue(threading.Event()))
    with pytest.raises(ValueError):
        sm.packets(ScanRange())