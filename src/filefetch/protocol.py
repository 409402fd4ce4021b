from __future__ import annotations

import enum
import os
from dataclasses import dataclass

from .constants import (
    ENCODING,
    LINE_DELIMITER,
    PATH_SEPARATOR,
    STATUS_INVALID_NAME,
    STATUS_NOT_FOUND,
    STATUS_READY,
)


class ProtocolError(ValueError):
    pass


class Status(enum.Enum):
    READY = STATUS_READY
    NOT_FOUND = STATUS_NOT_FOUND
    INVALID_NAME = STATUS_INVALID_NAME

    def to_byte(self) -> bytes:
        return self.value

    @staticmethod
    def from_byte(raw: bytes) -> "Status":
        if len(raw) != 1:
            raise ProtocolError(f"expected exactly one status byte, got {len(raw)}")
        try:
            return Status(raw)
        except ValueError:
            raise ProtocolError(f"unknown status byte: {raw!r}") from None


def _separators() -> set[str]:
    seps = {PATH_SEPARATOR, os.sep}
    if os.altsep:
        seps.add(os.altsep)
    return seps


def is_valid_filename(name: str) -> bool:
    """A name is servable only if it cannot address anything outside the root."""
    return not any(sep in name for sep in _separators())


@dataclass(frozen=True, slots=True)
class Request:
    filename: str

    def to_bytes(self) -> bytes:
        if "\n" in self.filename:
            raise ProtocolError("filename cannot contain a newline")
        try:
            encoded = self.filename.encode(ENCODING)
        except UnicodeEncodeError as e:
            raise ProtocolError(f"filename is not encodable as {ENCODING}: {e.reason}") from None
        return encoded + LINE_DELIMITER

    @staticmethod
    def from_line(raw: bytes) -> "Request":
        if not raw.endswith(LINE_DELIMITER):
            raise ProtocolError("request line is not newline-terminated")
        line = raw[: -len(LINE_DELIMITER)]
        if line.endswith(b"\r"):
            line = line[:-1]
        return Request(filename=line.decode(ENCODING, errors="replace"))
