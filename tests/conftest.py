from __future__ import annotations

import socket
import threading
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from markdown_composer.config import CONFIG_ENV_OVERRIDES


class RecordingRenderer:
    def __init__(self) -> None:
        self.documents: list[str] = []

    def update(self, document: str) -> None:
        self.documents.append(document)


class ChunkReader:
    """Stand-in for ``Connection.read_chunk`` that replays fixed chunks, then EOF."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = list(chunks)
        self.calls = 0

    def __call__(self) -> bytes:
        self.calls += 1
        if not self._chunks:
            return b""
        return self._chunks.pop(0)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MARKDOWN_COMPOSER_CONFIG", str(tmp_path / "config.json"))
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def editor() -> Iterator[Callable[..., int]]:
    """Start a one-shot editor listener that writes ``chunks`` and hangs up."""

    threads: list[threading.Thread] = []

    def _serve(*chunks: bytes) -> int:
        listener = socket.create_server(("127.0.0.1", 0))
        port = listener.getsockname()[1]

        def run() -> None:
            with listener:
                conn, _ = listener.accept()
                with conn:
                    for chunk in chunks:
                        conn.sendall(chunk)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        threads.append(thread)
        return port

    yield _serve
    for thread in threads:
        thread.join(timeout=5)


@pytest.fixture
def closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
