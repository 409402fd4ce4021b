from __future__ import annotations

import socket
from typing import Iterator, Optional, Tuple

from .constants import (
    ACCEPT_POLL_S,
    BUFFER_SIZE,
    DEFAULT_BACKLOG,
    LINE_DELIMITER,
    MAX_REQUEST_BYTES,
)
from .protocol import ProtocolError


def validate_buffer_size(size: int) -> int:
    if size < 1:
        raise ValueError(f"buffer size must be at least 1, got {size}")
    return size


def _apply_timeout(sock: socket.socket, timeout_ms: int) -> None:
    sock.settimeout(timeout_ms / 1000.0 if timeout_ms > 0 else None)


class Connection:
    """One TCP stream with a small read buffer shared by line, exact and chunked reads."""

    def __init__(self, sock: socket.socket, peer: Optional[Tuple[str, int]] = None, bufsize: int = BUFFER_SIZE):
        self.sock = sock
        self.peer = peer
        self.bufsize = bufsize
        self._buffer = bytearray()

    @classmethod
    def connect(cls, host: str, port: int, timeout_ms: int = 0, bufsize: int = BUFFER_SIZE) -> "Connection":
        sock = socket.create_connection((host, port), timeout=timeout_ms / 1000.0 if timeout_ms > 0 else None)
        return cls(sock, (host, port), bufsize)

    def _fill(self) -> bool:
        chunk = self.sock.recv(self.bufsize)
        if not chunk:
            return False
        self._buffer += chunk
        return True

    def readline(self, limit: int = MAX_REQUEST_BYTES) -> bytes:
        """Return one line including its delimiter, or whatever arrived before end of stream."""
        while True:
            idx = self._buffer.find(LINE_DELIMITER)
            if idx >= 0:
                if idx + 1 > limit:
                    raise ProtocolError(f"request line exceeds {limit} bytes")
                line = bytes(self._buffer[: idx + 1])
                del self._buffer[: idx + 1]
                return line
            if len(self._buffer) > limit:
                raise ProtocolError(f"request line exceeds {limit} bytes")
            if not self._fill():
                line = bytes(self._buffer)
                self._buffer.clear()
                return line

    def read_exact(self, n: int) -> bytes:
        while len(self._buffer) < n:
            if not self._fill():
                break
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def iter_chunks(self) -> Iterator[bytes]:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            yield data
        while True:
            chunk = self.sock.recv(self.bufsize)
            if not chunk:
                return
            yield chunk

    def sendall(self, data: bytes) -> None:
        self.sock.sendall(data)

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Listener:
    def __init__(self, sock: socket.socket, timeout_ms: int = 0, bufsize: int = BUFFER_SIZE):
        self.sock = sock
        self.timeout_ms = timeout_ms
        self.bufsize = bufsize

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        backlog: int = DEFAULT_BACKLOG,
        timeout_ms: int = 0,
        bufsize: int = BUFFER_SIZE,
    ) -> "Listener":
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
        except OSError:
            sock.close()
            raise
        # accept() polls so a shutdown request is noticed
        sock.settimeout(ACCEPT_POLL_S)
        return cls(sock, timeout_ms, bufsize)

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self.sock.getsockname()[:2]
        return host, port

    def accept(self) -> Optional[Connection]:
        try:
            sock, peer = self.sock.accept()
        except socket.timeout:
            return None
        _apply_timeout(sock, self.timeout_ms)
        return Connection(sock, peer, self.bufsize)

    def close(self) -> None:
        self.sock.close()
