from __future__ import annotations

from filefetch.bench import run_benchmark


def test_benchmark_sequential():
    r = run_benchmark(size_bytes=100_000, workers=1)
    assert r.bytes_transferred == 100_000
    assert r.fetches == 1
    assert r.duration_s > 0
    assert r.throughput_mbps > 0


def test_benchmark_empty_payload():
    r = run_benchmark(size_bytes=0, fetches=3, workers=2)
    assert r.bytes_transferred == 0
    assert r.fetches == 3
