"""Detection of SOCKS5 proxies that accept clients without authentication."""

from __future__ import annotations

import json
import socket
import struct
import threading
from dataclasses import dataclass
from typing import Protocol

from sxscan.requests import Request

SCAN_TYPE = "socks"
SOCKS_VERSION = 5
METHOD_NO_AUTH = 0

_DEFAULT_DIAL_TIMEOUT = 2.0
_DEFAULT_DATA_TIMEOUT = 2.0
_POLL_INTERVAL = 0.05


class _Writer(Protocol):
    def write(self, data: bytes) -> int | None: ...


class _Reader(Protocol):
    def read(self, size: int) -> bytes: ...


@dataclass
class MethodRequest:
    """The client's offer of authentication methods (RFC 1928)."""

    ver: int
    methods: bytes

    @property
    def n_methods(self) -> int:
        return len(self.methods) & 0xFF

    def __len__(self) -> int:
        return 2 + self.n_methods

    def write_to(self, stream: _Writer) -> int:
        """Write the message and return the number of bytes written."""
        data = bytes([self.ver, self.n_methods]) + bytes(self.methods)
        written = stream.write(data)
        return len(data) if written is None else written


@dataclass
class MethodReply:
    """The server's choice of authentication method (RFC 1928)."""

    ver: int = 0
    method: int = 0

    def __len__(self) -> int:
        return 2

    def read_from(self, stream: _Reader) -> int:
        """Read the two-byte reply; raises EOFError if it is cut short."""
        data = b""
        while len(data) < 2:
            chunk = stream.read(2 - len(data))
            if not chunk:
                raise EOFError("unexpected end of stream in method reply")
            data += chunk
        self.ver, self.method = data[0], data[1]
        return 2


@dataclass
class ScanResult:
    ip: str
    port: int
    scan_type: str = SCAN_TYPE
    version: int = SOCKS_VERSION
    auth: bool = False

    def __str__(self) -> str:
        return f"{self.ip:<20} {self.port:<5}"

    def id(self) -> str:
        return f"{self.ip}:{self.port}"

    def to_json(self) -> str:
        obj: dict[str, object] = {
            "scan": self.scan_type,
            "version": self.version,
            "ip": self.ip,
            "port": self.port,
        }
        if self.auth:
            obj["auth"] = True
        return json.dumps(obj, separators=(",", ":"))


class _SocksConn:
    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)

    def read(self, size: int) -> bytes:
        return self._sock.recv(size)


def _shutdown_on_stop(sock: socket.socket, stop: threading.Event,
                      finished: threading.Event) -> None:
    while not finished.wait(_POLL_INTERVAL):
        if stop.is_set():
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            return


class Scanner:
    """Connects to a TCP port and offers the SOCKS5 no-authentication method."""

    def __init__(self, dial_timeout: float = _DEFAULT_DIAL_TIMEOUT,
                 data_timeout: float = _DEFAULT_DATA_TIMEOUT) -> None:
        self.dial_timeout = dial_timeout
        self.data_timeout = data_timeout

    def scan(self, request: Request, stop: threading.Event | None = None) -> ScanResult | None:
        """Return a result if the target accepts SOCKS5 without authentication.

        Connection and I/O failures are raised as OSError; a reply that ends
        early raises EOFError.
        """
        address = (str(request.dst_ip), request.dst_port)
        with socket.create_connection(address, timeout=self.dial_timeout) as sock:
            # give up on a graceful close after one second
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 1))
            sock.settimeout(self.data_timeout)
            finished = threading.Event()
            if stop is not None:
                threading.Thread(target=_shutdown_on_stop, args=(sock, stop, finished),
                                 daemon=True).start()
            try:
                conn = _SocksConn(sock)
                MethodRequest(SOCKS_VERSION, bytes([METHOD_NO_AUTH])).write_to(conn)
                reply = MethodReply()
                reply.read_from(conn)
            finally:
                finished.set()
        if reply.ver == SOCKS_VERSION and reply.method == METHOD_NO_AUTH:
            return ScanResult(ip=str(request.dst_ip), port=request.dst_port)
        return None