from __future__ import annotations

import enum

STATUS_READY = b"R"
STATUS_NOT_FOUND = b"N"
STATUS_INVALID_NAME = b"I"

LINE_DELIMITER = b"\n"
PATH_SEPARATOR = "/"
ENCODING = "utf-8"

BUFFER_SIZE = 1024
MAX_REQUEST_BYTES = 4096

DEFAULT_HOST = "localhost"
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_PORT = 12345
DEFAULT_ROOT = "Images"
DEFAULT_WORKERS = 8
DEFAULT_TIMEOUT_MS = 0  # 0 blocks forever
DEFAULT_BACKLOG = 16
ACCEPT_POLL_S = 0.5


class ExitCode(enum.IntEnum):
    # 1 and 2 belong to the interpreter and argparse
    OK = 0
    MISSING_FILENAME = 3
    UNKNOWN_HOST = 4
    IO_ERROR = 5
    CONNECTION_REFUSED = 6
    INVALID_PORT = 7
    PROTOCOL_ERROR = 8
    BIND_FAILED = 9
