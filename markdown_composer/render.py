from __future__ import annotations

import re
from functools import lru_cache

from markdown_it import MarkdownIt

DEFAULT_HIGHLIGHT_THEME = "github"
HIGHLIGHT_JS_VERSION = "11.9.0"
_HIGHLIGHT_CDN = f"https://cdnjs.cloudflare.com/ajax/libs/highlight.js/{HIGHLIGHT_JS_VERSION}"
_THEME_RE = re.compile(r"^[A-Za-z0-9_.-]+(/[A-Za-z0-9_.-]+)?$")


@lru_cache(maxsize=1)
def _markdown() -> MarkdownIt:
    # Editor content is untrusted enough that raw HTML stays escaped.
    return MarkdownIt("commonmark", {"html": False, "linkify": False}).enable(
        ["table", "strikethrough"]
    )


def render_markdown(text: str) -> str:
    """Render one document snapshot to an HTML fragment.

    Fenced code keeps its ``language-<lang>`` class so highlight.js can pick
    it up in the browser.
    """

    if not text:
        return ""
    return _markdown().render(text)


def validate_highlight_theme(theme: str) -> str:
    clean = theme.strip()
    if not clean or not _THEME_RE.match(clean) or ".." in clean:
        raise ValueError(f"invalid highlight theme: {theme!r}")
    return clean


def highlight_theme_url(theme: str = DEFAULT_HIGHLIGHT_THEME) -> str:
    return f"{_HIGHLIGHT_CDN}/styles/{validate_highlight_theme(theme)}.min.css"


def highlight_script_url() -> str:
    return f"{_HIGHLIGHT_CDN}/highlight.min.js"
