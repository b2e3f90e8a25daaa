from __future__ import annotations

import logging
import socket
from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_CONNECT_TIMEOUT_S = 5.0
READ_CHUNK_SIZE = 64 * 1024


class ConnectError(Exception):
    """Raised when no editor is listening on the requested port."""

    def __init__(self, port: int, host: str = DEFAULT_HOST, reason: str = "") -> None:
        self.port = port
        self.host = host
        self.reason = reason
        message = f"no listener on port {port}"
        if reason:
            message = f"{message} ({host}: {reason})"
        super().__init__(message)


class Connection:
    """Client side of the editor socket, read through a buffered reader."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._reader: BinaryIO | None = sock.makefile("rb")

    @property
    def closed(self) -> bool:
        return self._reader is None

    def read_chunk(self, size: int = READ_CHUNK_SIZE) -> bytes:
        """Block until at least one byte is available; ``b""`` means the peer closed."""

        if self._reader is None:
            raise ValueError("read from closed connection")
        return self._reader.read1(size)  # type: ignore[attr-defined]

    def close(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()
        self._sock.close()

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def connect(
    port: int,
    *,
    host: str = DEFAULT_HOST,
    timeout_s: float | None = DEFAULT_CONNECT_TIMEOUT_S,
) -> Connection:
    try:
        sock = socket.create_connection((host, port), timeout=timeout_s)
    except (OSError, OverflowError) as exc:
        raise ConnectError(port, host, str(exc) or exc.__class__.__name__) from exc
    # The timeout only bounds the connect; reads wait for the editor indefinitely.
    sock.settimeout(None)
    logger.info("connected to editor at %s:%s", host, port)
    return Connection(sock)
