from __future__ import annotations

import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from adapters.filesystem.json_utils import dump_json_bytes, load_snapshot
from adapters.layout.anchor_chain import AnchorChainLayoutEngine, compute_tree_bounds
from app.config import load_settings
from domain.errors import MalformedNodeError
from domain.models import CONNECTION_MODES, CanvasDocument, LayoutConfig
from domain.services.canvas_snapshot import CanvasSnapshot
from domain.services.chain_validation import validate_link

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _read_snapshot(snapshot_path: Path) -> CanvasDocument:
    if not snapshot_path.exists():
        console.print(f"[red]File not found:[/] {snapshot_path}")
        raise typer.Exit(code=1)
    try:
        return load_snapshot(snapshot_path)
    except (ValidationError, ValueError) as exc:
        console.print(f"[red]Invalid canvas snapshot:[/] {exc}")
        raise typer.Exit(code=1) from exc


def _layout_config(config_path: Path | None, strict: bool) -> LayoutConfig:
    layout = load_settings(config_path).layout
    if strict:
        layout = layout.model_copy(update={"strict": True})
    return layout.to_layout_config()


@app.command("layout")
def layout(
    snapshot_path: Path = typer.Argument(..., help="Canvas snapshot JSON file."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the plan as JSON."),
    config_path: Path | None = typer.Option(None, "--config", help="Settings YAML file."),
    strict: bool = typer.Option(False, help="Fail on malformed node records."),
) -> None:
    document = _read_snapshot(snapshot_path)
    engine = AnchorChainLayoutEngine(_layout_config(config_path, strict))
    try:
        plan = engine.compute_layout(document.nodes)
    except MalformedNodeError as exc:
        console.print(f"[red]Malformed node {exc.node_id}:[/] {exc}")
        raise typer.Exit(code=1) from exc

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(dump_json_bytes(plan.to_dict()))
        console.print(f"[green]Wrote[/] {output}")
        return

    table = Table(title=f"Canvas {document.canvas_id}")
    for column in ("id", "type", "zone", "x", "y", "width", "time", "track"):
        table.add_column(column)
    for positioned in plan.nodes:
        timeline = positioned.timeline
        table.add_row(
            positioned.node_id,
            positioned.node_type,
            positioned.zone,
            f"{positioned.position.x:.1f}",
            f"{positioned.position.y:.1f}",
            f"{positioned.size.width:.1f}",
            f"{timeline.time:.2f}" if timeline else "-",
            str(timeline.track) if timeline else "-",
        )
    console.print(table)
    bounds = compute_tree_bounds(plan)
    if bounds is not None:
        console.print(
            f"Bounds: ({bounds.min_x:.1f}, {bounds.min_y:.1f}) - "
            f"({bounds.max_x:.1f}, {bounds.max_y:.1f})"
        )


@app.command("check")
def check(
    snapshot_path: Path = typer.Argument(..., help="Canvas snapshot JSON file."),
    config_path: Path | None = typer.Option(None, "--config", help="Settings YAML file."),
) -> None:
    """Report structural issues; exits with 1 if the canvas is inconsistent."""
    document = _read_snapshot(snapshot_path)
    plan = AnchorChainLayoutEngine(_layout_config(config_path, strict=False)).compute_layout(
        document.nodes
    )
    if not plan.inconsistent:
        root = plan.root_id or "none"
        console.print(f"[green]Consistent:[/] {len(plan.nodes)} nodes, root {root}")
        return
    for issue in plan.issues:
        console.print(f"[red]{issue.code}[/] {issue.node_id}: {issue.message}")
    raise typer.Exit(code=1)


@app.command("validate-link")
def validate_link_command(
    snapshot_path: Path = typer.Argument(..., help="Canvas snapshot JSON file."),
    child_id: str = typer.Argument(..., help="Node to anchor."),
    parent_id: str = typer.Argument(..., help="Proposed parent node."),
    mode: str = typer.Argument(..., help="STACK, PREPEND or APPEND."),
    insert: bool = typer.Option(False, help="Allow splicing into an occupied slot."),
    config_path: Path | None = typer.Option(None, "--config", help="Settings YAML file."),
) -> None:
    normalized_mode = mode.strip().upper()
    if normalized_mode not in CONNECTION_MODES:
        console.print(f"[red]Unknown connection mode:[/] {mode}")
        raise typer.Exit(code=2)
    document = _read_snapshot(snapshot_path)
    result = validate_link(
        CanvasSnapshot(document.nodes),
        child_id,
        parent_id,
        normalized_mode,
        allow_insertion=insert,
        config=_layout_config(config_path, strict=False),
    )
    if result.valid:
        console.print(f"[green]Valid:[/] {child_id} -> {parent_id} ({normalized_mode})")
        return
    console.print(f"[red]Invalid ({result.code}):[/] {result.reason}")
    raise typer.Exit(code=1)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
    config_path: Path | None = typer.Option(None, "--config", help="Settings YAML file."),
) -> None:
    import uvicorn

    from app.web_main import create_app

    uvicorn.run(create_app(load_settings(config_path)), host=host, port=port)


if __name__ == "__main__":
    app()
