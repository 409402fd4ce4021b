from __future__ import annotations

import argparse
import json
import logging
import os
import socket
import sys
from dataclasses import asdict

from .bench import run_benchmark
from .client import FileClient, InvalidPortError, validate_port
from .constants import (
    BUFFER_SIZE,
    DEFAULT_HOST,
    DEFAULT_LISTEN_HOST,
    DEFAULT_PORT,
    DEFAULT_ROOT,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_WORKERS,
    ExitCode,
)
from .protocol import ProtocolError, Status
from .server import FileServer


def _fail(e: BaseException, code: ExitCode) -> int:
    print(f"error: {e}", file=sys.stderr)
    return int(code)


def exit_code_for(e: BaseException) -> ExitCode:
    # gaierror and the refusal errors are OSError subclasses, so order matters
    if isinstance(e, socket.gaierror):
        return ExitCode.UNKNOWN_HOST
    if isinstance(e, (ConnectionRefusedError, PermissionError)):
        return ExitCode.CONNECTION_REFUSED
    if isinstance(e, (InvalidPortError, OverflowError)):
        return ExitCode.INVALID_PORT
    if isinstance(e, ProtocolError):
        return ExitCode.PROTOCOL_ERROR
    return ExitCode.IO_ERROR


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def parse_port(text: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise InvalidPortError(f"invalid port value: {text!r}") from None
    return validate_port(port)


def cmd_serve(args: argparse.Namespace) -> int:
    if not os.path.isdir(args.root):
        logging.warning("serving root %s is not a directory; every request will be NOT_FOUND", args.root)

    server = FileServer(
        root=args.root,
        host=args.host,
        port=args.port,
        workers=args.workers,
        timeout_ms=args.timeout_ms,
        buffer_size=args.buffer_size,
    )
    try:
        server.bind()
    except (OSError, OverflowError) as e:
        return _fail(e, ExitCode.BIND_FAILED)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.info("interrupted")
    return int(ExitCode.OK)


def cmd_fetch(args: argparse.Namespace) -> int:
    if not args.filename:
        print("Requires one argument.", file=sys.stderr)
        return int(ExitCode.MISSING_FILENAME)

    try:
        client = FileClient(
            host=args.host,
            port=parse_port(args.port),
            timeout_ms=args.timeout_ms,
            buffer_size=args.buffer_size,
            dest_dir=args.dest,
        )
        result = client.fetch(args.filename)
    except (OSError, OverflowError, ProtocolError, InvalidPortError) as e:
        return _fail(e, exit_code_for(e))

    if result.status is Status.NOT_FOUND:
        print(f"File not found: {args.filename}")
        return int(ExitCode.OK)
    if result.status is Status.INVALID_NAME:
        print(f"Invalid symbol in filename: {args.filename}")
        return int(ExitCode.OK)

    payload = {
        "role": "client",
        "file": result.path,
        "bytes": result.metrics.bytes_transferred,
        "seconds": result.metrics.duration_s,
        "mbps": result.metrics.throughput_mbps,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return int(ExitCode.OK)


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        fetches=args.fetches,
        workers=args.workers,
        buffer_size=args.buffer_size,
    )
    payload = {"role": "bench", **asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return int(ExitCode.OK)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="filefetch", description="Fetch files by name over TCP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--buffer-size", type=positive_int, default=BUFFER_SIZE)

    serve = sub.add_parser("serve", help="serve files from a directory")
    add_common(serve)
    serve.add_argument("--root", default=DEFAULT_ROOT)
    serve.add_argument("--host", default=DEFAULT_LISTEN_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="1 serves strictly one connection at a time")
    serve.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS, help="per-connection idle timeout, 0 = none")
    serve.set_defaults(func=cmd_serve)

    fetch = sub.add_parser("fetch", help="fetch one file into the destination directory")
    add_common(fetch)
    fetch.add_argument("filename", nargs="?")
    fetch.add_argument("--host", default=DEFAULT_HOST)
    fetch.add_argument("--port", default=str(DEFAULT_PORT))
    fetch.add_argument("--dest", default=".")
    fetch.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
    fetch.add_argument("--json", action="store_true")
    fetch.set_defaults(func=cmd_fetch)

    bench = sub.add_parser("bench", help="loopback benchmark")
    add_common(bench)
    bench.add_argument("--size-bytes", type=int, default=5_000_000)
    bench.add_argument("--fetches", type=int, default=1)
    bench.add_argument("--workers", type=int, default=DEFAULT_WORKERS)
    bench.add_argument("--json", action="store_true")
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
