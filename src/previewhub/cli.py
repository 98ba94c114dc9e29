"""Command line entry point.

Usage:
    previewhub serve                      # Start on 0.0.0.0:8080
    previewhub serve --port 3000          # Custom port
    previewhub serve --data-root ./data   # Keep workspaces somewhere else
    previewhub config                     # Show the resolved configuration
"""

from dataclasses import replace
from pathlib import Path

import click
import uvicorn
import yaml
from rich.console import Console
from rich.syntax import Syntax

from previewhub import __version__
from previewhub.foundation.config import HubConfig, load_config
from previewhub.foundation.errors import HubError
from previewhub.foundation.logging import configure_logging

console = Console()


def _load(config_path: Path | None) -> HubConfig:
    try:
        return load_config(config_path)
    except HubError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from None


@click.group()
@click.version_option(__version__, prog_name="previewhub")
def main() -> None:
    """previewhub - live, shared shell and preview sessions."""


@main.command()
@click.option("--host", default=None, help="Host to bind to (default: from config)")
@click.option("--port", type=int, default=None, help="Port to listen on (default: from config)")
@click.option(
    "--data-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding one sub-directory per workspace",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a config.yaml",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def serve(
    host: str | None,
    port: int | None,
    data_root: Path | None,
    config_path: Path | None,
    debug: bool,
) -> None:
    """Start the previewhub HTTP/WebSocket server.

    \b
    Examples:
        previewhub serve
        previewhub serve --port 3000 --data-root ./workspaces
        PREVIEWHUB_STORAGE_IDLE_GRACE_SECONDS=60 previewhub serve
    """
    from previewhub.server.main import create_app

    config = _load(config_path)
    if host or port:
        config = replace(
            config,
            server=replace(
                config.server,
                host=host or config.server.host,
                port=port or config.server.port,
            ),
        )
    if data_root:
        config = replace(config, storage=replace(config.storage, data_root=data_root.expanduser()))
    if debug:
        config = replace(config, debug=True)

    configure_logging(debug=config.debug, log_dir=config.log_dir)
    app = create_app(config)

    console.print()
    console.print(f"[bold green]previewhub[/bold green] {__version__}")
    console.print(f"   URL: http://{config.server.host}:{config.server.port}")
    console.print(f"   Workspaces: {config.storage.data_root}")
    console.print(f"   Idle grace: {config.storage.idle_grace_seconds:g}s")
    console.print()
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="debug" if config.debug else "info",
        ws_ping_interval=config.server.ping_interval_seconds,
    )


@main.command("config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a config.yaml",
)
def show_config(config_path: Path | None) -> None:
    """Print the resolved configuration as YAML."""
    config = _load(config_path)
    text = yaml.safe_dump(config.to_dict(), sort_keys=False)
    console.print(Syntax(text, "yaml", background_color="default"))


if __name__ == "__main__":
    main()
