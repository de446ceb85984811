"""DocChat CLI: manage stored session images.

Usage:
    docchat serve                    Start the API server
    docchat assets ingest imgs.json  Store a JSON map of id -> base64/data URI
    docchat assets list SESSION      List images stored for a session
    docchat sessions list            List sessions with a catalog
    docchat sessions delete SESSION  Delete a session's images
    docchat sessions prune           Delete sessions past the retention window
"""

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from docchat.cli.config import DocChatConfig, load_config
from docchat.cli.output import format_asset_table, format_ingest_report, format_session_table
from docchat.errors import InvalidIdentifierError, format_error_summary
from docchat.services.asset_store import SessionAssetStore, build_asset_store
from docchat.utils.paths import ensure_dirs_exist

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="docchat",
    help="Session-scoped storage for images extracted from documents",
    no_args_is_help=True,
)
assets_app = typer.Typer(help="Store and list session images")
sessions_app = typer.Typer(help="Inspect and clean up sessions")

app.add_typer(assets_app, name="assets")
app.add_typer(sessions_app, name="sessions")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to docchat.yaml config file"
    ),
):
    """DocChat CLI."""
    global _config_path
    _config_path = config


def _load() -> DocChatConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


def _store(cfg: DocChatConfig) -> SessionAssetStore:
    return build_asset_store(cfg.assets.root_dir, cfg.assets.public_prefix)


def _emit(output) -> None:
    # JSON must stay parseable: no wrapping, no markup
    if isinstance(output, str):
        console.print(output, soft_wrap=True, markup=False, highlight=False)
    else:
        console.print(output)


@app.command()
def version():
    """Show DocChat version."""
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("docchat")
    except Exception:
        v = "unknown"
    console.print(f"[bold]DocChat[/bold] v{v}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Start the API server (uvicorn)."""
    import os

    import uvicorn

    cfg = _load()
    final_host = host or cfg.server.host
    final_port = port or cfg.server.port
    if cfg.assets.root_dir:
        # create_app() reads the storage settings from the environment
        os.environ["DOCCHAT_ASSET_DIR"] = str(Path(cfg.assets.root_dir).expanduser())
    os.environ["DOCCHAT_PUBLIC_PREFIX"] = cfg.assets.public_prefix
    ensure_dirs_exist()

    console.print(f"[bold]Starting DocChat API on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "docchat.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.server.log_level,
    )


# --- Asset commands ---


@assets_app.command("ingest")
def assets_ingest(
    file: Path = typer.Argument(help="JSON file mapping image ID to base64 or data URI"),
    session: Optional[str] = typer.Option(None, "--session", "-s", help="Existing session ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Store every image in FILE under one session."""
    try:
        images = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read {file}:[/red] {e}")
        raise typer.Exit(1)
    if not isinstance(images, dict):
        console.print("[red]Expected a JSON object of image ID -> encoded data.[/red]")
        raise typer.Exit(1)

    store = _store(_load())
    try:
        report = store.ingest_with_report(images, session)
    except InvalidIdentifierError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    _emit(format_ingest_report(report, as_json=json_output))
    if report.errors and not json_output:
        console.print(f"[yellow]{format_error_summary(report.errors)}[/yellow]")
    if report.errors and not report.assets:
        raise typer.Exit(1)


@assets_app.command("list")
def assets_list(
    session: str = typer.Argument(help="Session ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List images stored for a session."""
    store = _store(_load())
    _emit(format_asset_table(store.list_assets(session), as_json=json_output))


# --- Session commands ---


@sessions_app.command("list")
def sessions_list(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List sessions that have a catalog, newest first."""
    store = _store(_load())
    _emit(format_session_table(store.list_sessions(), as_json=json_output))


@sessions_app.command("delete")
def sessions_delete(
    session: str = typer.Argument(help="Session ID"),
):
    """Delete every stored image of a session."""
    store = _store(_load())
    if not store.session_exists(session):
        console.print(f"[yellow]Session {session} not found.[/yellow]")
        raise typer.Exit(1)
    if store.delete_session(session):
        console.print(f"[green]Deleted session {session}.[/green]")
    else:
        console.print(f"[red]Session {session} was only partially deleted; see logs.[/red]")
        raise typer.Exit(1)


@sessions_app.command("prune")
def sessions_prune(
    older_than_hours: Optional[int] = typer.Option(
        None, "--older-than-hours", help="Age cutoff (defaults to assets.retention_hours)"
    ),
):
    """Delete sessions created before the retention cutoff."""
    cfg = _load()
    hours = older_than_hours if older_than_hours is not None else cfg.assets.retention_hours
    if hours < 0:
        console.print("[red]--older-than-hours must not be negative.[/red]")
        raise typer.Exit(1)

    deleted = _store(cfg).prune_sessions(timedelta(hours=hours))
    _log.info("Pruned %d session(s) older than %dh", len(deleted), hours)
    if not deleted:
        console.print("No sessions to prune.")
        return
    for session_id in deleted:
        console.print(f"  removed {session_id}")
    console.print(f"[green]Pruned {len(deleted)} session(s).[/green]")


if __name__ == "__main__":
    app()
