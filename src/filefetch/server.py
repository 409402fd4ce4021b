from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Tuple

from .constants import (
    ACCEPT_POLL_S,
    BUFFER_SIZE,
    DEFAULT_LISTEN_HOST,
    DEFAULT_PORT,
    DEFAULT_ROOT,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_WORKERS,
)
from .metrics import TransferMetrics
from .net import Connection, Listener, validate_buffer_size
from .protocol import ProtocolError, Request, Status, is_valid_filename


@dataclass(frozen=True, slots=True)
class ConnectionOutcome:
    filename: str
    status: Status
    metrics: TransferMetrics
    peer: Optional[Tuple[str, int]] = None


@dataclass(slots=True)
class FileServer:
    """Serves files from ``root`` to one request per connection.

    ``workers == 1`` handles each connection to completion inside the accept
    loop. Larger values hand connections to a thread pool, with at most
    ``workers`` connections accepted and in flight at any time.
    """

    root: str = DEFAULT_ROOT
    host: str = DEFAULT_LISTEN_HOST
    port: int = DEFAULT_PORT
    workers: int = DEFAULT_WORKERS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    buffer_size: int = BUFFER_SIZE

    _listener: Optional[Listener] = field(default=None, init=False, repr=False)
    _shutdown: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _stopped: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    def __post_init__(self) -> None:
        validate_buffer_size(self.buffer_size)

    def bind(self) -> Tuple[str, int]:
        self._shutdown.clear()
        self._stopped.clear()
        self._listener = Listener.listening(
            self.host,
            self.port,
            timeout_ms=self.timeout_ms,
            bufsize=self.buffer_size,
        )
        return self._listener.address

    @property
    def address(self) -> Tuple[str, int]:
        if self._listener is None:
            raise RuntimeError("server is not bound")
        return self._listener.address

    def serve_forever(self) -> None:
        if self._listener is None:
            self.bind()
        listener = self._listener
        assert listener is not None

        workers = max(1, self.workers)
        host, port = listener.address
        logging.info("serving %s on %s:%d; workers=%d", os.path.abspath(self.root), host, port, workers)

        executor: Optional[ThreadPoolExecutor] = None
        slots: Optional[threading.BoundedSemaphore] = None
        if workers > 1:
            executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="filefetch")
            slots = threading.BoundedSemaphore(workers)

        try:
            while not self._shutdown.is_set():
                if slots is not None and not slots.acquire(timeout=ACCEPT_POLL_S):
                    continue

                try:
                    conn = listener.accept()
                except OSError as e:
                    conn = None
                    if not self._shutdown.is_set():
                        logging.warning("accept failed: %s", e)

                if conn is None:
                    if slots is not None:
                        slots.release()
                    continue

                if executor is None:
                    self.handle_connection(conn)
                else:
                    future = executor.submit(self.handle_connection, conn)
                    future.add_done_callback(lambda f, s=slots: self._handler_done(f, s))
        finally:
            if executor is not None:
                executor.shutdown(wait=True)
            listener.close()
            self._listener = None
            self._stopped.set()
            logging.info("server stopped")

    @staticmethod
    def _handler_done(future: Future, slots: threading.BoundedSemaphore) -> None:
        slots.release()
        exc = future.exception()
        if exc is not None:
            logging.error("connection handler failed", exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown.set()
        if wait and self._listener is not None:
            self._stopped.wait()

    def handle_connection(self, conn: Connection) -> Optional[ConnectionOutcome]:
        """Serve a single exchange; returns None if the connection was abandoned."""
        with conn:
            try:
                outcome = self._exchange(conn)
            except ProtocolError as e:
                logging.warning("%s: bad request, connection abandoned: %s", conn.peer, e)
                return None
            except OSError as e:
                logging.warning("%s: I/O error, connection abandoned: %s", conn.peer, e)
                return None
            except Exception:
                logging.exception("%s: unexpected error, connection abandoned", conn.peer)
                return None

        logging.info(
            "%s: %r -> %s (%d bytes)",
            conn.peer,
            outcome.filename,
            outcome.status.name,
            outcome.metrics.bytes_transferred,
        )
        return outcome

    def _exchange(self, conn: Connection) -> ConnectionOutcome:
        metrics = TransferMetrics()
        request = Request.from_line(conn.readline())
        name = request.filename

        if not is_valid_filename(name):
            conn.sendall(Status.INVALID_NAME.to_byte())
            metrics.finish()
            return ConnectionOutcome(name, Status.INVALID_NAME, metrics, conn.peer)

        f = self._open(name)
        if f is None:
            conn.sendall(Status.NOT_FOUND.to_byte())
            metrics.finish()
            return ConnectionOutcome(name, Status.NOT_FOUND, metrics, conn.peer)

        with f:
            conn.sendall(Status.READY.to_byte())
            for chunk in iter(lambda: f.read(self.buffer_size), b""):
                conn.sendall(chunk)
                metrics.bytes_transferred += len(chunk)

        metrics.finish()
        return ConnectionOutcome(name, Status.READY, metrics, conn.peer)

    def _open(self, name: str) -> Optional[BinaryIO]:
        path = os.path.join(self.root, name)
        try:
            return open(path, "rb")
        except (OSError, ValueError) as e:
            logging.debug("cannot open %s: %s", path, e)
            return None
