from __future__ import annotations

import json
import os
from http.server import BaseHTTPRequestHandler
from urllib.parse import urlparse

_ALLOWED_ORIGIN_HOSTS = {"127.0.0.1", "localhost", "::1"}


def _is_allowed_loopback_origin_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme != "http":
        return False
    if parsed.username is not None or parsed.password is not None:
        return False
    try:
        hostname = parsed.hostname
        _ = parsed.port
    except ValueError:
        return False
    if hostname not in _ALLOWED_ORIGIN_HOSTS:
        return False
    return (
        parsed.path in ("", "/") and not parsed.params and not parsed.query and not parsed.fragment
    )


def _no_cache_enabled() -> bool:
    return os.environ.get("MARKDOWN_COMPOSER_NO_CACHE") == "1"


def send_json_response(
    handler: BaseHTTPRequestHandler,
    payload: dict,
    status: int = 200,
) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    # Preview documents change on every keystroke.
    handler.send_header("Cache-Control", "no-store")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def send_bytes_response(
    handler: BaseHTTPRequestHandler,
    body: bytes,
    *,
    content_type: str,
    status: int = 200,
) -> None:
    handler.send_response(status)
    handler.send_header("Content-Type", content_type)
    if _no_cache_enabled():
        handler.send_header("Cache-Control", "no-store")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def send_not_found(handler: BaseHTTPRequestHandler) -> None:
    handler.send_response(404)
    handler.send_header("Content-Length", "0")
    handler.end_headers()


def reject_cross_origin(handler: BaseHTTPRequestHandler) -> bool:
    """Send a 403 and return True when a browser page on another origin asks.

    Requests without an Origin header (same-origin GETs, curl) pass.
    """

    origin = handler.headers.get("Origin")
    if not origin:
        return False
    if _is_allowed_loopback_origin_url(origin):
        return False
    send_json_response(handler, {"error": "forbidden"}, status=403)
    return True
