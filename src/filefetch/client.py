from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .constants import BUFFER_SIZE, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .metrics import TransferMetrics
from .net import Connection, validate_buffer_size
from .protocol import ProtocolError, Request, Status, is_valid_filename


class InvalidPortError(ValueError):
    pass


class LocalWriteError(OSError):
    pass


@dataclass(frozen=True, slots=True)
class FetchResult:
    filename: str
    status: Status
    metrics: TransferMetrics
    path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is Status.READY


def validate_port(port: int) -> int:
    if not 0 < port <= 65535:
        raise InvalidPortError(f"port out of range: {port}")
    return port


@dataclass(slots=True)
class FileClient:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    buffer_size: int = BUFFER_SIZE
    dest_dir: str = "."

    def __post_init__(self) -> None:
        validate_buffer_size(self.buffer_size)

    def fetch(self, filename: str) -> FetchResult:
        """Run one request/response cycle for ``filename``.

        On READY the payload is written to ``dest_dir/filename``, replacing any
        existing file. NOT_FOUND and INVALID_NAME leave the local directory
        untouched. Connection and local write failures propagate as OSError;
        a malformed response raises ProtocolError.
        """
        validate_port(self.port)
        line = Request(filename).to_bytes()
        metrics = TransferMetrics()

        with Connection.connect(self.host, self.port, self.timeout_ms, self.buffer_size) as conn:
            logging.debug("connected to %s:%d; requesting %r", self.host, self.port, filename)
            conn.sendall(line)

            raw = conn.read_exact(1)
            if not raw:
                raise ProtocolError("connection closed before status byte")
            status = Status.from_byte(raw)
            logging.debug("status=%s for %r", status.name, filename)

            if status is not Status.READY:
                metrics.finish()
                return FetchResult(filename, status, metrics)

            # the local name must stay inside dest_dir whatever the peer answered
            if not is_valid_filename(filename):
                raise ProtocolError(f"server sent READY for unservable name {filename!r}")
            path = os.path.join(self.dest_dir, filename)
            try:
                out = open(path, "wb")
            except OSError as e:
                raise LocalWriteError(e.errno, f"cannot write {path}: {e.strerror}") from e
            with out:
                for chunk in conn.iter_chunks():
                    out.write(chunk)
                    metrics.bytes_transferred += len(chunk)

        metrics.finish()
        logging.info("received %r; %d bytes in %.3fs", filename, metrics.bytes_transferred, metrics.duration_s)
        return FetchResult(filename, status, metrics, path)
