from __future__ import annotations

import json
import socket

import pytest

from filefetch.cli import exit_code_for, main
from filefetch.client import InvalidPortError, LocalWriteError
from filefetch.constants import ExitCode
from filefetch.protocol import ProtocolError


def fetch_args(server, dest, *extra):
    host, port = server.address
    return ["fetch", *extra, "--host", host, "--port", str(port), "--dest", str(dest), "--timeout-ms", "5000"]


def test_fetch_success(start_server, dest, serve_root, capsys):
    rc = main(fetch_args(start_server(), dest, "photo.png", "--json"))

    assert rc == ExitCode.OK
    assert (dest / "photo.png").read_bytes() == (serve_root / "photo.png").read_bytes()
    out = json.loads(capsys.readouterr().out)
    assert out["role"] == "client"
    assert out["bytes"] == 1024


def test_fetch_not_found(start_server, dest, capsys):
    rc = main(fetch_args(start_server(), dest, "missing.txt"))

    assert rc == ExitCode.OK
    assert "File not found: missing.txt" in capsys.readouterr().out
    assert list(dest.iterdir()) == []


def test_fetch_invalid_name(start_server, dest, capsys):
    rc = main(fetch_args(start_server(), dest, "../secret.txt"))

    assert rc == ExitCode.OK
    assert "Invalid symbol in filename: ../secret.txt" in capsys.readouterr().out
    assert list(dest.iterdir()) == []


def test_missing_filename(capsys):
    assert main(["fetch"]) == ExitCode.MISSING_FILENAME
    assert "Requires one argument" in capsys.readouterr().err


@pytest.mark.parametrize("port", ["abc", "0", "70000"])
def test_invalid_port(port, capsys):
    assert main(["fetch", "photo.png", "--port", port]) == ExitCode.INVALID_PORT
    assert capsys.readouterr().err.startswith("error:")


def test_connection_refused(free_port, dest):
    rc = main(["fetch", "photo.png", "--host", "127.0.0.1", "--port", str(free_port), "--dest", str(dest)])
    assert rc == ExitCode.CONNECTION_REFUSED


def test_unknown_host(monkeypatch, dest, capsys):
    def fail(*args, **kwargs):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(socket, "create_connection", fail)
    rc = main(["fetch", "photo.png", "--host", "no.such.host.invalid", "--dest", str(dest)])

    assert rc == ExitCode.UNKNOWN_HOST
    assert "Name or service not known" in capsys.readouterr().err


def test_protocol_error(one_shot_server, dest):
    host, port = one_shot_server(b"?")
    rc = main(["fetch", "photo.png", "--host", host, "--port", str(port), "--dest", str(dest), "--timeout-ms", "5000"])
    assert rc == ExitCode.PROTOCOL_ERROR


def test_local_write_error(start_server, tmp_path):
    rc = main(fetch_args(start_server(), tmp_path / "nope", "photo.png"))
    assert rc == ExitCode.IO_ERROR


def test_serve_bind_failure(tmp_path, capsys):
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(("127.0.0.1", 0))
    holder.listen(1)
    try:
        port = holder.getsockname()[1]
        rc = main(["serve", "--root", str(tmp_path), "--host", "127.0.0.1", "--port", str(port)])
    finally:
        holder.close()

    assert rc == ExitCode.BIND_FAILED
    assert "error:" in capsys.readouterr().err


def test_exit_codes_are_distinct():
    codes = [c.value for c in ExitCode]
    assert len(codes) == len(set(codes))


@pytest.mark.parametrize(
    "exc, code",
    [
        (socket.gaierror(-2, "unknown"), ExitCode.UNKNOWN_HOST),
        (ConnectionRefusedError(111, "refused"), ExitCode.CONNECTION_REFUSED),
        (PermissionError(13, "denied"), ExitCode.CONNECTION_REFUSED),
        (InvalidPortError("bad"), ExitCode.INVALID_PORT),
        (ProtocolError("bad"), ExitCode.PROTOCOL_ERROR),
        (LocalWriteError(13, "cannot write"), ExitCode.IO_ERROR),
        (ConnectionResetError(104, "reset"), ExitCode.IO_ERROR),
        (TimeoutError("timed out"), ExitCode.IO_ERROR),
    ],
)
def test_exit_code_for(exc, code):
    assert exit_code_for(exc) is code


def test_bench_command(capsys):
    rc = main(["bench", "--size-bytes", "20000", "--fetches", "2", "--workers", "2", "--json"])
    assert rc == ExitCode.OK
    out = json.loads(capsys.readouterr().out)
    assert out["role"] == "bench"
    assert out["bytes_transferred"] == 40000
    assert out["fetches"] == 2


@pytest.mark.parametrize("cmd", ["fetch", "serve", "bench"])
@pytest.mark.parametrize("size", ["0", "-5", "abc"])
def test_buffer_size_is_validated(cmd, size, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main([cmd, "--buffer-size", size])
    assert excinfo.value.code == 2
    assert "--buffer-size" in capsys.readouterr().err


def test_unencodable_filename(dest, capsys):
    rc = main(["fetch", "bad\udcffname", "--port", "12345", "--dest", str(dest)])
    assert rc == ExitCode.PROTOCOL_ERROR
    assert capsys.readouterr().err.startswith("error:")
