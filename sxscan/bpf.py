"""Capture filter expressions for the packet-based scans."""

from __future__ import annotations

from sxscan.requests import ScanRange

# typical maximum Ethernet frame: MTU 1500 + header 14 + FCS 4
MAX_PACKET_LENGTH = 1518


def icmp_bpf_filter(scan_range: ScanRange) -> tuple[str, int]:
    """Filter for ICMP replies (anything but echo requests) from the subnet."""
    parts = ["icmp and icmp[0]!=8"]
    if scan_range.dst_subnet is not None:
        parts.append(f"ip src net {scan_range.dst_subnet}")
    return " and ".join(parts), MAX_PACKET_LENGTH


def tcp_bpf_filter(scan_range: ScanRange) -> tuple[str, int]:
    """Filter for TCP segments from the subnet and the scanned ports."""
    parts = ["tcp"]
    if scan_range.dst_subnet is not None:
        parts.append(f"ip src net {scan_range.dst_subnet}")
    if scan_range.ports:
        ranges = " or ".join(
            f"src portrange {pr.start_port}-{pr.end_port}" for pr in scan_range.ports
        )
        parts.append(f"({ranges})")
    return " and ".join(parts), MAX_PACKET_LENGTH


def tcp_synack_bpf_filter(scan_range: ScanRange) -> tuple[str, int]:
    """Like :func:`tcp_bpf_filter`, restricted to SYN+ACK segments."""
    expression, max_length = tcp_bpf_filter(scan_range)
    return expression + " and tcp[13] == 18", max_length