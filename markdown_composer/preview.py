from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

from . import preview_assets
from .preview_http import (
    reject_cross_origin,
    send_bytes_response,
    send_json_response,
    send_not_found,
)
from .render import DEFAULT_HIGHLIGHT_THEME, render_markdown, validate_highlight_theme

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_HOST = "127.0.0.1"
DEFAULT_POLL_TIMEOUT_S = 25.0
MAX_POLL_TIMEOUT_S = 60.0


@dataclass(frozen=True)
class DocumentSnapshot:
    version: int
    markdown: str
    html: str

    def to_payload(self) -> dict:
        return {"version": self.version, "markdown": self.markdown, "html": self.html}


class PreviewState:
    """Latest document shown in the browser.

    Every ``update`` bumps ``version``, including a replay of identical text,
    and wakes any long-poll request waiting on an older version.
    """

    def __init__(self, initial_markdown: str | None = None) -> None:
        markdown = initial_markdown or ""
        self._cond = threading.Condition()
        self._snapshot = DocumentSnapshot(0, markdown, render_markdown(markdown))
        self._closed = False

    def snapshot(self) -> DocumentSnapshot:
        with self._cond:
            return self._snapshot

    def update(self, markdown: str) -> DocumentSnapshot:
        html = render_markdown(markdown)
        with self._cond:
            self._snapshot = DocumentSnapshot(self._snapshot.version + 1, markdown, html)
            self._cond.notify_all()
            return self._snapshot

    def wait_for_change(self, since: int, timeout: float) -> DocumentSnapshot:
        with self._cond:
            self._cond.wait_for(
                lambda: self._closed or self._snapshot.version != since,
                timeout=timeout,
            )
            return self._snapshot

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


def _parse_poll_params(query: str) -> tuple[int | None, float]:
    params = parse_qs(query)
    since: int | None = None
    timeout = DEFAULT_POLL_TIMEOUT_S
    try:
        if "since" in params:
            since = int(params["since"][0])
        if "timeout" in params:
            timeout = float(params["timeout"][0])
    except ValueError:
        raise ValueError("invalid poll parameters") from None
    return since, min(max(timeout, 0.0), MAX_POLL_TIMEOUT_S)


def build_preview_handler(state: PreviewState, highlight_theme: str = DEFAULT_HIGHLIGHT_THEME):
    theme = validate_highlight_theme(highlight_theme)

    class PreviewHandler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            if os.environ.get("MARKDOWN_COMPOSER_HTTP_LOGS") == "1":
                super().log_message(format, *args)

        def _send_document(self, query: str) -> None:
            try:
                since, timeout = _parse_poll_params(query)
            except ValueError:
                send_json_response(self, {"error": "invalid poll parameters"}, status=400)
                return
            if since is None:
                snapshot = state.snapshot()
            else:
                snapshot = state.wait_for_change(since, timeout)
            send_json_response(self, snapshot.to_payload())

        def do_GET(self) -> None:  # noqa: N802
            parsed = urlparse(self.path)
            if parsed.path == "/":
                send_bytes_response(
                    self,
                    preview_assets.get_index_html_bytes(theme),
                    content_type="text/html; charset=utf-8",
                )
                return
            if parsed.path.startswith("/assets/"):
                try:
                    body, content_type = preview_assets.get_static_asset_bytes(
                        parsed.path[len("/assets/") :]
                    )
                except (OSError, ValueError):
                    send_not_found(self)
                    return
                send_bytes_response(self, body, content_type=content_type)
                return
            if parsed.path == "/api/document":
                if reject_cross_origin(self):
                    return
                self._send_document(parsed.query)
                return
            send_not_found(self)

    return PreviewHandler


class PreviewServer:
    """HTTP preview of the current document on an arbitrary loopback port."""

    def __init__(
        self,
        host: str = DEFAULT_PREVIEW_HOST,
        port: int = 0,
        *,
        initial_markdown: str | None = None,
        highlight_theme: str = DEFAULT_HIGHLIGHT_THEME,
    ) -> None:
        self.state = PreviewState(initial_markdown)
        handler = build_preview_handler(self.state, highlight_theme)
        self._server = ThreadingHTTPServer((host, port), handler)
        self._server.daemon_threads = True
        self._thread: threading.Thread | None = None

    @property
    def host(self) -> str:
        return str(self._server.server_address[0])

    @property
    def http_port(self) -> int:
        return int(self._server.server_address[1])

    @property
    def url(self) -> str:
        host = self.host
        if host in {"127.0.0.1", "0.0.0.0"}:
            host = "localhost"
        return f"http://{host}:{self.http_port}"

    def start(self) -> PreviewServer:
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._server.serve_forever, name="markdown-preview", daemon=True
            )
            self._thread.start()
            logger.info("preview server listening on %s", self.url)
        return self

    def update(self, document: str) -> None:
        self.state.update(document)

    def stop(self) -> None:
        self.state.close()
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join(timeout=2.0)
            self._thread = None
        self._server.server_close()

    def __enter__(self) -> PreviewServer:
        return self.start()

    def __exit__(self, *exc: object) -> None:
        self.stop()
