from __future__ import annotations

import asyncio
import json
import shutil
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from ..config import AppConfig, load_config
from ..errors import ConversionError
from ..jobs import RunScheduler
from ..logging import setup_logging
from ..models import RunRecord, RunStatus
from ..providers import build_providers, check_providers as run_provider_checks
from ..store import RunStore
from ..uploads import UploadStore
from ..utils import generate_run_id

console = Console()

app = typer.Typer(help="Convert folders of documents into HTML guides")


def _load_config(path: Path | None) -> AppConfig:
    return load_config(path)


@app.command()
def convert(
    folder: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    """Upload FOLDER, run the conversion inline and print the archive path."""

    cfg = _load_config(config)
    try:
        upload = UploadStore(cfg).save_folder(folder)
    except ConversionError as exc:
        console.print(f"[red]Upload failed[/red]: {exc.code} - {exc}")
        raise typer.Exit(1) from exc
    store = RunStore(cfg)
    record = store.create(upload.upload_id)
    console.print(f"Run [bold]{record.run_id}[/bold] queued with {len(upload.files)} file(s)")

    scheduler = RunScheduler(cfg, store)
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task = progress.add_task("Queued", total=100)

        async def _on_progress(current: RunRecord) -> None:
            progress.update(task, completed=current.progress, description=current.message or "Working")

        final = asyncio.run(scheduler.process_run(record.run_id, _on_progress))
        if final is not None and final.status is RunStatus.COMPLETED:
            progress.update(task, completed=100, description="Complete")

    if final is None or final.status is not RunStatus.COMPLETED:
        error = final.error if final else "Run did not complete"
        console.print(f"[red]Conversion failed[/red]: {error}")
        if final and final.debug_error:
            console.print(f"Details: {final.debug_error.get('message')}")
        raise typer.Exit(1)
    console.print(f"[green]Success[/green]: {final.download_path}")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    import uvicorn

    from api.app import create_app

    cfg = _load_config(config)
    setup_logging()
    uvicorn.run(create_app(cfg), host=host or cfg.api.host, port=port or cfg.api.port)


@app.command()
def status(
    run_id: str,
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    record = RunStore(cfg).get(run_id)
    if record is None:
        console.print(f"[red]Run not found[/red]: {run_id}")
        raise typer.Exit(1)
    console.print_json(json.dumps(record.to_payload()))


@app.command("check-providers")
def check_providers(
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    results = asyncio.run(run_provider_checks(build_providers(cfg), expose_errors=True))
    table = Table(title="Rewrite providers")
    table.add_column("Provider")
    table.add_column("Configured")
    table.add_column("OK")
    table.add_column("Model")
    table.add_column("Error")
    for result in results:
        table.add_row(
            result.provider,
            "yes" if result.configured else "no",
            "[green]yes[/green]" if result.ok else "[red]no[/red]",
            result.model or "-",
            result.error or "-",
        )
    console.print(table)


@app.command()
def clean(
    older_than: int = typer.Option(
        0,
        "--older-than",
        min=0,
        help="Delete runs older than the given days",
    ),
    keep: int = typer.Option(
        0,
        "--keep",
        min=0,
        help="Keep the most recent N runs and delete the rest",
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to config.toml"),
) -> None:
    cfg = _load_config(config)
    runs_dir = cfg.runtime.runs_dir
    if not runs_dir.exists():
        console.print("No runs directory found.")
        raise typer.Exit()
    candidates = sorted([p for p in runs_dir.iterdir() if p.is_dir()], key=lambda p: p.stat().st_mtime)
    to_remove: list[Path] = []
    if keep:
        to_remove.extend(candidates[:-keep])
    if older_than:
        threshold = time.time() - older_than * 86400
        to_remove.extend([p for p in candidates if p.stat().st_mtime < threshold])
    store = RunStore(cfg)
    removed: set[Path] = set()
    for path in to_remove:
        if path in removed:
            continue
        record = store.get(path.name)
        if record is not None and record.status is RunStatus.RUNNING:
            continue
        if record is not None:
            output = store.output_dir(record)
            if output is not None:
                shutil.rmtree(output, ignore_errors=True)
        shutil.rmtree(path, ignore_errors=True)
        removed.add(path)
    console.print(f"Removed {len(removed)} run directories.")


@app.command()
def new_run_id() -> None:
    console.print(generate_run_id())


if __name__ == "__main__":
    app()
