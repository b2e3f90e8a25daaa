from __future__ import annotations

import logging
import webbrowser

logger = logging.getLogger(__name__)


class LaunchError(Exception):
    """Raised when the preview URL could not be opened in a browser."""

    def __init__(self, url: str, browser: str | None = None, reason: str = "") -> None:
        self.url = url
        self.browser = browser
        self.reason = reason
        target = f"browser {browser!r}" if browser else "the default browser"
        message = f"could not open {url} in {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


def open_browser(url: str, browser: str | None = None) -> None:
    """Open ``url`` in ``browser`` (an executable or registered name) or the default one."""

    try:
        controller = webbrowser.get(browser) if browser else webbrowser.get()
        opened = controller.open(url, new=2)
    except (webbrowser.Error, OSError) as exc:
        raise LaunchError(url, browser, str(exc)) from exc
    if not opened:
        raise LaunchError(url, browser, "browser did not accept the url")
    logger.info("opened %s in %s", url, browser or "default browser")
