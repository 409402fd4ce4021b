"""filefetch: fetch a single file by name over TCP.

A client sends ``<filename>\\n``; the server answers with one status byte
(``R`` ready, ``N`` not found, ``I`` invalid name) and, on ``R``, the raw file
bytes until it closes the connection.

- ``protocol``: status enumeration and request line framing
- ``server``: accept loop and per-connection handling
- ``client``: one request/response cycle per call
"""

from .client import FetchResult, FileClient
from .protocol import ProtocolError, Request, Status
from .server import FileServer

__all__ = ["FetchResult", "FileClient", "FileServer", "ProtocolError", "Request", "Status"]
