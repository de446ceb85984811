"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag).
"""

import json

from rich.table import Table

from docchat.services.asset_store import IngestReport, SessionCatalog, StoredAsset


def format_dimensions(asset: StoredAsset) -> str:
    if asset.width is None or asset.height is None:
        return "—"
    return f"{asset.width}×{asset.height}"


def format_asset_table(assets: list[StoredAsset], as_json: bool = False) -> Table | str:
    """Format a session's stored images as a Rich table or JSON."""
    if as_json:
        return json.dumps([a.to_dict() for a in assets], indent=2)

    if not assets:
        return "No images found."

    table = Table(title="Images", show_lines=False)
    table.add_column("Original ID", style="cyan", no_wrap=True)
    table.add_column("Stored ID")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Public Path", style="green")

    for asset in assets:
        table.add_row(
            asset.original_id,
            asset.id,
            asset.mime_type,
            format_dimensions(asset),
            asset.public_path,
        )
    return table


def format_session_table(catalogs: list[SessionCatalog], as_json: bool = False) -> Table | str:
    """Format session catalogs as a Rich table or JSON."""
    if as_json:
        return json.dumps(
            [
                {k: v for k, v in c.to_dict().items() if k != "assets"}
                for c in catalogs
            ],
            indent=2,
        )

    if not catalogs:
        return "No sessions found."

    table = Table(title="Sessions")
    table.add_column("Session ID", style="cyan", no_wrap=True)
    table.add_column("Images", justify="right")
    table.add_column("Created")

    for catalog in catalogs:
        table.add_row(
            catalog.session_id,
            str(catalog.image_count),
            catalog.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        )
    return table


def format_ingest_report(report: IngestReport, as_json: bool = False) -> Table | str:
    """Format an ingestion result; failures are listed by the caller."""
    if as_json:
        return json.dumps(
            {
                "sessionId": report.session_id,
                "assets": {k: v.to_dict() for k, v in report.assets.items()},
                "errors": [e.to_dict() for e in report.errors],
            },
            indent=2,
        )
    table = format_asset_table(list(report.assets.values()))
    if isinstance(table, Table):
        table.title = f"Stored in session {report.session_id}"
    return table
