from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from .connection import DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_HOST, connect
from .framing import FrameDecoder, Malformed, Message, PeerClosed

logger = logging.getLogger(__name__)

IngestStatus = Literal["clean", "malformed"]


class Renderer(Protocol):
    def update(self, document: str) -> None: ...


@dataclass
class IngestResult:
    status: IngestStatus
    messages: int = 0
    cause: str | None = None

    @property
    def clean(self) -> bool:
        return self.status == "clean"


def run_ingestion(decoder: FrameDecoder, renderer: Renderer) -> IngestResult:
    """Decode frames and hand each document to the renderer until the stream ends.

    Documents are dispatched synchronously in wire order, one per frame, with
    no coalescing. The loop stops at the first ``PeerClosed`` or ``Malformed``.
    """

    messages = 0
    while True:
        outcome = decoder.next_outcome()
        if isinstance(outcome, Message):
            logger.debug("document %d received (%d chars)", messages + 1, len(outcome.text))
            renderer.update(outcome.text)
            messages += 1
            continue
        if isinstance(outcome, PeerClosed):
            logger.info("editor disconnected after %d document(s)", messages)
            return IngestResult(status="clean", messages=messages)
        if isinstance(outcome, Malformed):
            logger.error("malformed stream after %d document(s): %s", messages, outcome.cause)
            return IngestResult(status="malformed", messages=messages, cause=outcome.cause)
        raise TypeError(f"unknown decode outcome: {outcome!r}")


def ingest_from_port(
    port: int,
    renderer: Renderer,
    *,
    host: str = DEFAULT_HOST,
    connect_timeout_s: float | None = DEFAULT_CONNECT_TIMEOUT_S,
) -> IngestResult:
    """Connect to the editor on ``port`` and ingest until it disconnects.

    Raises ``ConnectError`` when nothing is listening; that is never retried.
    """

    with connect(port, host=host, timeout_s=connect_timeout_s) as conn:
        decoder = FrameDecoder(conn.read_chunk)
        return run_ingestion(decoder, renderer)
