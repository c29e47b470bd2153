import ipaddress

import pytest

from sxscan.layers import (
    ICMPv4, IPV4_DONT_FRAGMENT, IP_PROTOCOL_ICMPV4, IP_PROTOCOL_TCP, IP_PROTOCOL_UDP,
    TCP_OPTION_MSS, DecodeError, Ethernet, IPv4, TCP, TCPOption, UDP, decode,
    internet_checksum, serialize,
)

SRC_MAC = bytes([0x1, 0x2, 0x3, 0x4, 0x5, 0x6])
DST_MAC = bytes([0x10, 0x11, 0x12, 0x13, 0x14, 0x15])
SRC_IP = ipaddress.IPv4Address("192.168.0.3")
DST_IP = ipaddress.IPv4Address("192.168.0.2")


def _ip(protocol):
    return IPv4(src_ip=SRC_IP, dst_ip=DST_IP, protocol=protocol,
                flags=IPV4_DONT_FRAGMENT, id=12345, ttl=64)


def test_checksum_of_data_with_checksum_is_zero():
    data = b"\x45\x00\x00\x1c\x12\x34"
    checksum = internet_checksum(data)
    assert internet_checksum(data + checksum.to_bytes(2, "big")) == 0


def test_tcp_round_trip_over_ethernet():
    tcp = TCP(src_port=22, dst_port=45678, seq=1234567, syn=True, ack=True,
              options=[TCPOption(TCP_OPTION_MSS, b"\x05\xb4")])
    data = serialize([Ethernet(SRC_MAC, DST_MAC), _ip(IP_PROTOCOL_TCP), tcp])
    eth, ip, seg = decode(data, "ethernet")
    assert eth.src_mac == SRC_MAC and eth.dst_mac == DST_MAC
    assert ip.src_ip == SRC_IP and ip.dst_ip == DST_IP
    assert ip.flags == IPV4_DONT_FRAGMENT
    assert internet_checksum(data[14:34]) == 0
    assert (seg.src_port, seg.dst_port, seg.seq) == (22, 45678, 1234567)
    assert seg.syn and seg.ack and not seg.fin
    assert seg.options == [TCPOption(TCP_OPTION_MSS, b"\x05\xb4")]


def test_udp_round_trip_with_payload():
    data = serialize([_ip(IP_PROTOCOL_UDP), UDP(src_port=40000, dst_port=4567)], b"abc")
    ip, udp = decode(data, "ipv4")
    assert ip.length == 20 + 8 + 3
    assert udp.payload == b"abc"
    assert udp.dst_port == 4567


def test_icmp_round_trip():
    data = serialize([_ip(IP_PROTOCOL_ICMPV4), ICMPv4(type=3, code=1, id=7, seq=1)], b"xy")
    ip, icmp = decode(data, "ipv4")
    assert (icmp.type, icmp.code, icmp.id, icmp.seq) == (3, 1, 7, 1)
    assert internet_checksum(ip.payload) == 0


def test_ns_flag_round_trip():
    data = serialize([_ip(IP_PROTOCOL_TCP), TCP(ns=True, cwr=True)])
    _, seg = decode(data, "ipv4")
    assert seg.ns and seg.cwr and not seg.syn


def test_unsupported_ethernet_type_stops_decoding():
    data = serialize([Ethernet(SRC_MAC, DST_MAC, 0x0806)], bytes(28))
    layers = decode(data, "ethernet")
    assert [type(layer) for layer in layers] == [Ethernet]


def test_truncated_packet_raises():
    with pytest.raises(DecodeError):
        decode(b"\x45\x00", "ipv4")


def test_unknown_link_raises():
    with pytest.raises(ValueError):
        decode(b"", "token-ring")


def test_tcp_checksum_needs_ip_layer():
    with pytest.raises(ValueError):
        serialize([TCP()])