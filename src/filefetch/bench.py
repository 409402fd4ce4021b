from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass

from .client import FileClient
from .constants import BUFFER_SIZE, DEFAULT_WORKERS
from .protocol import Status
from .server import FileServer

BENCH_FILENAME = "bench.bin"


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    duration_s: float
    throughput_mbps: float
    fetches: int


def run_benchmark(
    *,
    size_bytes: int,
    fetches: int = 1,
    workers: int = DEFAULT_WORKERS,
    buffer_size: int = BUFFER_SIZE,
) -> BenchmarkResult:
    payload = os.urandom(size_bytes)

    with tempfile.TemporaryDirectory() as root, tempfile.TemporaryDirectory() as dest:
        with open(os.path.join(root, BENCH_FILENAME), "wb") as f:
            f.write(payload)

        server = FileServer(root=root, host="127.0.0.1", port=0, workers=workers, buffer_size=buffer_size)
        host, port = server.bind()
        t = threading.Thread(target=server.serve_forever, daemon=True)
        t.start()

        total_bytes = 0
        total_s = 0.0
        try:
            client = FileClient(host=host, port=port, buffer_size=buffer_size, dest_dir=dest)
            for _ in range(fetches):
                result = client.fetch(BENCH_FILENAME)
                if result.status is not Status.READY:
                    raise RuntimeError(f"benchmark fetch failed: {result.status.name}")
                total_bytes += result.metrics.bytes_transferred
                total_s += result.metrics.duration_s
        finally:
            server.shutdown()
            t.join(timeout=10.0)

        with open(os.path.join(dest, BENCH_FILENAME), "rb") as f:
            if f.read() != payload:
                raise RuntimeError("benchmark copy differs from source")

    duration_s = max(0.001, total_s)
    throughput_mbps = (total_bytes * 8 / 1_000_000) / duration_s

    return BenchmarkResult(
        bytes_transferred=total_bytes,
        duration_s=duration_s,
        throughput_mbps=throughput_mbps,
        fetches=fetches,
    )
