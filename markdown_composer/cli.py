from __future__ import annotations

import logging

import typer
from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from . import __version__
from .config import LOG_LEVELS, ComposerConfig, load_config
from .connection import DEFAULT_HOST, ConnectError
from .ingest import IngestResult, ingest_from_port
from .launcher import LaunchError, open_browser
from .preview import PreviewServer
from .render import validate_highlight_theme

EXIT_CONNECT_FAILED = 1
EXIT_MALFORMED_STREAM = 3
EXIT_STREAM_ERROR = 4

app = typer.Typer(
    help="markdown-composer: live browser preview of markdown streamed from an editor",
    add_completion=False,
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _version_callback(value: bool) -> None:
    if value:
        print(__version__)
        raise typer.Exit()


def _apply_cli_overrides(
    cfg: ComposerConfig,
    *,
    no_browser: bool,
    browser: str | None,
    highlight_theme: str | None,
    host: str | None,
    port: int | None,
    connect_timeout: float | None,
    log_level: str | None,
) -> ComposerConfig:
    if no_browser:
        cfg.open_browser = False
    if browser:
        cfg.browser = browser
    if highlight_theme:
        cfg.highlight_theme = highlight_theme
    if host:
        cfg.preview_host = host
    if port is not None:
        cfg.preview_port = port
    if connect_timeout is not None:
        cfg.connect_timeout_s = connect_timeout
    if log_level:
        cfg.log_level = log_level.upper()
    return cfg


def run_composer(server: PreviewServer, cfg: ComposerConfig, nvim_port: int) -> IngestResult:
    """Serve the preview, open it, then mirror the editor until it disconnects."""

    server.start()
    try:
        if cfg.open_browser:
            try:
                open_browser(server.url, cfg.browser)
            except LaunchError as exc:
                print(f"[yellow]{escape(str(exc))}[/yellow]")
                print(f"[yellow]Preview available at {server.url}[/yellow]")
        else:
            print(f"[green]Preview running at {server.url}[/green]")
        return ingest_from_port(
            nvim_port,
            server,
            host=DEFAULT_HOST,
            connect_timeout_s=cfg.connect_timeout_s,
        )
    finally:
        server.stop()


@app.command()
def compose(
    nvim_port: int = typer.Argument(
        ..., min=1, max=65535, help="Port the editor is serving the document on"
    ),
    initial_markdown: str = typer.Argument(None, help="Markdown to show before the first update"),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Don't open the web browser automatically"
    ),
    browser: str = typer.Option(
        None,
        "--browser",
        metavar="EXECUTABLE",
        help="Browser to open instead of the user's default browser",
    ),
    highlight_theme: str = typer.Option(
        None, "--highlight-theme", metavar="THEME", help="highlight.js theme (default: github)"
    ),
    host: str = typer.Option(None, "--host", help="Interface the preview server binds to"),
    port: int = typer.Option(
        None, "--port", min=0, max=65535, help="Preview server port (0 picks a free port)"
    ),
    connect_timeout: float = typer.Option(
        None, "--connect-timeout", min=0.1, help="Seconds to wait for the editor connection"
    ),
    log_level: str = typer.Option(None, "--log-level", help="Logging level (default: WARNING)"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit",
    ),
) -> None:
    """Render markdown sent by the editor on NVIM_PORT in a live browser preview."""

    try:
        cfg = load_config()
    except ValueError as exc:
        print(f"[red]Config error: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    cfg = _apply_cli_overrides(
        cfg,
        no_browser=no_browser,
        browser=browser,
        highlight_theme=highlight_theme,
        host=host,
        port=port,
        connect_timeout=connect_timeout,
        log_level=log_level,
    )
    try:
        cfg.highlight_theme = validate_highlight_theme(cfg.highlight_theme)
    except ValueError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    if cfg.log_level not in LOG_LEVELS:
        print(f"[red]Invalid log level: {escape(cfg.log_level)}[/red]")
        raise typer.Exit(code=1)
    configure_logging(cfg.log_level)

    try:
        server = PreviewServer(
            cfg.preview_host,
            cfg.preview_port,
            initial_markdown=initial_markdown,
            highlight_theme=cfg.highlight_theme,
        )
    except OSError as exc:
        print(f"[red]Could not start preview server: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc

    try:
        result = run_composer(server, cfg, nvim_port)
    except ConnectError as exc:
        print(f"[red]Could not connect to the editor: {escape(str(exc))}[/red]")
        raise typer.Exit(code=EXIT_CONNECT_FAILED) from exc
    except OSError as exc:
        print(
            f"[red]Connection to the editor on port {nvim_port} failed: "
            f"{escape(str(exc))}[/red]"
        )
        raise typer.Exit(code=EXIT_STREAM_ERROR) from exc

    if not result.clean:
        print(
            f"[red]Malformed stream from editor on port {nvim_port}: "
            f"{escape(result.cause or 'unknown error')}[/red]"
        )
        raise typer.Exit(code=EXIT_MALFORMED_STREAM)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
