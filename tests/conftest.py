from __future__ import annotations

import socket
import threading

import pytest

from filefetch.server import FileServer

PHOTO = bytes(range(256)) * 4


@pytest.fixture
def serve_root(tmp_path):
    root = tmp_path / "served"
    root.mkdir()
    (root / "photo.png").write_bytes(PHOTO)
    (root / "empty.bin").write_bytes(b"")
    (root / "notes.txt").write_bytes(b"hello\nworld\n")
    (root / "subdir").mkdir()
    # one level above the root, reachable only through "../secret.txt"
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def dest(tmp_path):
    d = tmp_path / "dest"
    d.mkdir()
    return d


@pytest.fixture
def start_server(serve_root):
    running = []

    def _start(**kwargs) -> FileServer:
        kwargs.setdefault("root", str(serve_root))
        kwargs.setdefault("workers", 1)
        server = FileServer(host="127.0.0.1", port=0, **kwargs)
        server.bind()
        t = threading.Thread(target=server.serve_forever, daemon=True)
        t.start()
        running.append((server, t))
        return server

    yield _start

    for server, t in running:
        server.shutdown()
        t.join(timeout=5.0)


@pytest.fixture
def one_shot_server():
    """A peer that reads one request line and answers with canned bytes."""
    threads = []
    listeners = []

    def _start(response: bytes):
        lsock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        lsock.bind(("127.0.0.1", 0))
        lsock.listen(1)
        listeners.append(lsock)

        def run():
            conn, _ = lsock.accept()
            with conn:
                buf = b""
                while not buf.endswith(b"\n"):
                    chunk = conn.recv(1024)
                    if not chunk:
                        break
                    buf += chunk
                conn.sendall(response)

        t = threading.Thread(target=run, daemon=True)
        t.start()
        threads.append(t)
        return lsock.getsockname()

    yield _start

    for t in threads:
        t.join(timeout=5.0)
    for lsock in listeners:
        lsock.close()


@pytest.fixture
def free_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
