# sxscan

Building blocks for network scanners, in pure Python with no third-party
dependencies.

## Modules

- `sxscan.ranges`: `RangeIterator(n)` yields every integer of `1..n` exactly
  once in a pseudo-random order, using multiplicative cyclic groups modulo a
  prime. A size that is not positive or is too large raises `RangeSizeError`.
- `sxscan.requests`: the scan target model (`PortRange`, `ScanRange`,
  `Request`, `IPPort`) and generators:
  - `PortGenerator.ports()`, `IPGenerator.ips()` and `FileIPGenerator.ips()`
    produce ports and addresses. Errors that happen while iterating are
    yielded as exception objects in the stream.
  - `IPPortGenerator`, `IPRequestGenerator` and `FileIPPortGenerator` turn
    them into `Request` objects via `generate_requests()`. The file
    generators take a callable that opens the file and read JSON lines such
    as `{"ip": "192.0.2.1", "port": 22}`. A bad line gives a request whose
    `err` is `InvalidJSONError`, `InvalidIPError` or `InvalidPortError`.
  - `LiveRequestGenerator` repeats another generator's requests, pausing
    `rescan_timeout` seconds between passes, until its stop event is set.
  - `FilterIPRequestGenerator` drops requests whose destination is in a
    given container, such as a set of addresses.
- `sxscan.results`: the `Result` protocol (`id()`, `to_json()`) and
  `ResultQueue`, a bounded queue that stops accepting and closes once a
  `threading.Event` is set.
- `sxscan.generator`: `PacketGenerator` and `PacketMultiGenerator`, which
  turn requests into `BufferData` packets with a filler. `merge_streams`
  merges several iterables, each read in its own thread.
- `sxscan.engine`:
  - `PacketSource` builds packets from a request generator and a packet
    generator.
  - `PacketEngine` wires a packet source to a sender and a receiver that
    you supply.
  - `GenericEngine` runs a scanner over every request with a pool of worker
    threads and puts the results on a `ResultQueue`.
  - `RateLimitScanner` calls a limiter's `take()` before every scan.
  - `merge_errors` merges error streams.
  - `start()` returns an `EngineRun` with `wait()` and `errors()`.
- `sxscan.bpf`: capture filter expressions, `icmp_bpf_filter`,
  `tcp_bpf_filter` and `tcp_synack_bpf_filter`. Each returns the expression
  and the maximum packet length, 1518.
- `sxscan.layers`: Ethernet, IPv4, TCP, UDP and ICMPv4 headers with
  `serialize`, `decode` and `internet_checksum`. Malformed input to `decode`
  raises `DecodeError`.
- `sxscan.icmp`, `sxscan.tcp`, `sxscan.udp`: a `PacketFiller` for each
  protocol that builds probe packets, and `ScanMethod` classes whose
  `process_packet_data()` turns captured replies into `ScanResult` objects.
  The UDP scan reports ICMP replies, such as port unreachable.
- `sxscan.socks5`: `MethodRequest` and `MethodReply` messages, and a
  `Scanner` that reports hosts which accept SOCKS5 without authentication.

## Installation

```
pip install .
```

## Example

```python
import ipaddress

from sxscan.requests import IPGenerator, IPPortGenerator, PortGenerator, PortRange, ScanRange

scan_range = ScanRange(
    dst_subnet=ipaddress.ip_network("192.0.2.0/30"),
    ports=[PortRange(22, 23)],
)
generator = IPPortGenerator(IPGenerator(), PortGenerator())
for request in generator.generate_requests(scan_range):
    print(request.dst_ip, request.dst_port)
```

Each address and port pair appears exactly once. The order is shuffled for
each run.

Building a TCP SYN probe:

```python
import ipaddress

from sxscan.requests import Request
from sxscan.tcp import PacketFiller

filler = PacketFiller(syn=True, vpn_mode=True)
packet = filler.fill(Request(
    src_ip=ipaddress.ip_address("192.0.2.10"),
    dst_ip=ipaddress.ip_address("192.0.2.1"),
    dst_port=22,
))
```

## What this package does not do

There is no command-line program. Nothing here opens raw sockets, sends
packets, or captures traffic. `PacketEngine` expects a sender
(`send_packets`) and a receiver (`receive_packets`) from the caller. The
filter expressions from `sxscan.bpf` are only strings for a capture library
of your choice. Destination MAC addresses are not resolved. A `Request`'s
`dst_mac` has to be set by the caller. Only the SOCKS5 scanner makes network
connections of its own, and they are ordinary TCP connections.

## Running the tests

```
pip install .[test]
pytest
```