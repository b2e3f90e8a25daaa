"""Decode the editor's msgpack stream into document snapshots.

The editor writes one msgpack ``str`` per buffer change with no framing beyond
msgpack's own type/length prefix. Every call to :meth:`FrameDecoder.next_outcome`
yields exactly one of:

- ``Message``: a complete string frame, text used verbatim.
- ``PeerClosed``: end of stream exactly on a frame boundary.
- ``Malformed``: anything else (truncated frame, bad UTF-8, non-string value).

End of stream is classified by position, not by exception identity: the
decoder remembers the byte offset where the last complete frame ended and
compares it with the number of bytes received when the stream runs dry.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import msgpack

ReadChunk = Callable[[], bytes]

MAX_FRAME_BYTES = 100 * 1024 * 1024


@dataclass(frozen=True)
class Message:
    text: str


@dataclass(frozen=True)
class PeerClosed:
    pass


@dataclass(frozen=True)
class Malformed:
    cause: str


DecodeOutcome = Message | PeerClosed | Malformed


def encode_document(text: str) -> bytes:
    """Pack one document snapshot the way the editor side does."""

    return msgpack.packb(text, use_bin_type=True)


def is_str_marker(marker: int) -> bool:
    # fixstr, str8, str16, str32
    return 0xA0 <= marker <= 0xBF or marker in (0xD9, 0xDA, 0xDB)


def describe_marker(marker: int) -> str:
    if marker <= 0x7F or marker >= 0xE0 or 0xCC <= marker <= 0xD3:
        return "integer"
    if 0x80 <= marker <= 0x8F or marker in (0xDE, 0xDF):
        return "map"
    if 0x90 <= marker <= 0x9F or marker in (0xDC, 0xDD):
        return "array"
    if is_str_marker(marker):
        return "string"
    if marker == 0xC0:
        return "nil"
    if marker in (0xC2, 0xC3):
        return "boolean"
    if marker in (0xC4, 0xC5, 0xC6):
        return "binary"
    if marker in (0xCA, 0xCB):
        return "float"
    if 0xC7 <= marker <= 0xC9 or 0xD4 <= marker <= 0xD8:
        return "ext"
    return "reserved"


class FrameDecoder:
    """Pull msgpack string frames off ``read_chunk`` one at a time.

    The type marker of each frame is checked before msgpack sees it, so a
    non-string value is rejected without reading any of its body or any
    later frame. Chunks are fed to the unpacker at most ``max_frame_bytes``
    at a time; the rest waits in a backlog until the current frame is done.
    """

    def __init__(self, read_chunk: ReadChunk, *, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self._read_chunk = read_chunk
        self._max_frame_bytes = max_frame_bytes
        # Room for one pending frame (header included) plus one fed piece.
        self._unpacker = msgpack.Unpacker(
            raw=False,
            max_buffer_size=2 * max_frame_bytes + 16,
            max_str_len=max_frame_bytes,
        )
        self._backlog = b""
        self._piece = b""
        self._piece_start = 0
        self._bytes_fed = 0
        self._boundary = 0
        self._checked_at = -1
        self._terminal: PeerClosed | Malformed | None = None

    @property
    def boundary_offset(self) -> int:
        """Stream offset where the last complete frame ended."""

        return self._boundary

    @property
    def pending_bytes(self) -> int:
        """Bytes fed to the unpacker past the last frame boundary."""

        return self._bytes_fed - self._boundary

    @property
    def finished(self) -> bool:
        return self._terminal is not None

    def next_outcome(self) -> DecodeOutcome:
        if self._terminal is not None:
            return self._terminal
        while True:
            start = self._boundary
            if self._checked_at != start:
                if self.pending_bytes == 0:
                    if not self._fill():
                        return self._end_of_stream()
                    if self._terminal is not None:
                        return self._terminal
                    continue
                marker = self._marker_at(start)
                if not is_str_marker(marker):
                    return self._finish(
                        Malformed(
                            f"unexpected {describe_marker(marker)} marker 0x{marker:02x} "
                            f"at offset {start}, expected a string frame"
                        )
                    )
                self._checked_at = start
            try:
                value = self._unpacker.unpack()
            except msgpack.OutOfData:
                if not self._fill():
                    return self._end_of_stream()
                if self._terminal is not None:
                    return self._terminal
                continue
            except UnicodeDecodeError as exc:
                return self._finish(
                    Malformed(f"invalid UTF-8 in string frame at offset {start}: {exc.reason}")
                )
            except (ValueError, msgpack.UnpackException) as exc:
                if "max_str_len" in str(exc):
                    return self._too_large(start)
                return self._finish(Malformed(f"invalid msgpack data at offset {start}: {exc}"))
            self._boundary = self._unpacker.tell()
            return Message(value)

    def _marker_at(self, offset: int) -> int:
        # Markers are checked before the next feed, so the byte is always in
        # the most recently fed piece.
        return self._piece[offset - self._piece_start]

    def _fill(self) -> bool:
        if not self._backlog:
            self._backlog = self._read_chunk()
            if not self._backlog:
                return False
        piece = self._backlog[: self._max_frame_bytes]
        self._backlog = self._backlog[self._max_frame_bytes :]
        try:
            self._unpacker.feed(piece)
        except msgpack.BufferFull:
            # The C unpacker checks max_str_len only once the payload is buffered.
            self._too_large(self._boundary)
            return True
        self._piece = piece
        self._piece_start = self._bytes_fed
        self._bytes_fed += len(piece)
        return True

    def _too_large(self, start: int) -> Malformed:
        outcome = Malformed(
            f"frame at offset {start} exceeds the {self._max_frame_bytes} byte limit"
        )
        self._finish(outcome)
        return outcome

    def _end_of_stream(self) -> PeerClosed | Malformed:
        pending = self.pending_bytes
        if pending == 0:
            return self._finish(PeerClosed())
        return self._finish(
            Malformed(
                f"truncated frame: stream ended {pending} byte(s) into the frame "
                f"at offset {self._boundary}"
            )
        )

    def _finish(self, outcome: PeerClosed | Malformed) -> PeerClosed | Malformed:
        self._terminal = outcome
        return outcome
