from __future__ import annotations

import mimetypes
import os
from importlib import resources
from pathlib import PurePosixPath

from .render import highlight_script_url, highlight_theme_url

_INDEX_TEMPLATE: str | None = None
_ASSET_CACHE: dict[str, bytes] = {}


def _no_cache_enabled() -> bool:
    return os.environ.get("MARKDOWN_COMPOSER_NO_CACHE") == "1"


def _read_static(name: str) -> bytes:
    return resources.files(__package__).joinpath("preview_static").joinpath(name).read_bytes()


def get_index_html_bytes(highlight_theme: str) -> bytes:
    global _INDEX_TEMPLATE
    template = _INDEX_TEMPLATE
    if template is None or _no_cache_enabled():
        template = _read_static("index.html").decode("utf-8")
        if not _no_cache_enabled():
            _INDEX_TEMPLATE = template
    html = template.replace("{{HIGHLIGHT_THEME_URL}}", highlight_theme_url(highlight_theme))
    html = html.replace("{{HIGHLIGHT_SCRIPT_URL}}", highlight_script_url())
    return html.encode("utf-8")


def get_static_asset_bytes(asset_path: str) -> tuple[bytes, str]:
    """Return bytes + content-type for a packaged preview_static asset."""

    clean = asset_path.strip().lstrip("/")
    path = PurePosixPath(clean)
    if not clean or path.is_absolute() or ".." in path.parts or clean == "index.html":
        raise ValueError("invalid asset path")

    key = str(path)
    cached: bytes | None = None
    if not _no_cache_enabled():
        cached = _ASSET_CACHE.get(key)
    if cached is None:
        cached = _read_static(key)
        if not _no_cache_enabled():
            _ASSET_CACHE[key] = cached

    content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    if content_type.startswith("text/"):
        content_type = f"{content_type}; charset=utf-8"
    return cached, content_type
