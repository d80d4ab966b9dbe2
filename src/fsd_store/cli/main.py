"""CLI for fsd-store: inspect and maintain the document store."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from fsd_store.core.config import AppSettings, BackendConfig, ObservabilityConfig
from fsd_store.exceptions import StoreError
from fsd_store.hooks import setup_logging
from fsd_store.models import Job
from fsd_store.services.document_store import DocumentStore, create_document_store
from fsd_store.services.schedules import ScheduleStore

app = typer.Typer(name="fsd-store", help="Derived-index document store on a cloud file backend")
console = Console()

T = TypeVar("T")


def _build_settings(backend: Optional[str], store_path: Optional[Path]) -> AppSettings:
    """Build settings, overriding env defaults with CLI flags."""
    settings = AppSettings()
    overrides: dict = {}
    if backend:
        overrides["kind"] = backend
    if store_path:
        overrides["store_path"] = store_path
    if overrides:
        settings.backend = BackendConfig(**{**settings.backend.model_dump(), **overrides})
    return settings


@app.callback()
def main(
    ctx: typer.Context,
    backend: Optional[str] = typer.Option(None, "--backend", help="drive, file or memory"),
    store_path: Optional[Path] = typer.Option(None, "--store-path", help="Base directory for the file backend"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    settings = _build_settings(backend, store_path)
    level = "DEBUG" if verbose else settings.observability.log_level
    observability = ObservabilityConfig(log_level=level, log_format=settings.observability.log_format)
    setup_logging(observability, backend=settings.backend.kind)
    ctx.obj = settings


def _run(ctx: typer.Context, action: Callable[[DocumentStore], Awaitable[T]]) -> T:
    """Open a store, run *action* against it, and report store errors."""
    settings: AppSettings = ctx.obj

    async def _go() -> T:
        async with create_document_store(settings) as store:
            return await action(store)

    try:
        return asyncio.run(_go())
    except (StoreError, ValueError) as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        raise typer.Exit(code=1) from e


async def _folder(store: DocumentStore, name: Optional[str]) -> str:
    root = await store.root_folder()
    return root if not name else await store.resolve(name, root)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise typer.BadParameter(f"{path} is not valid JSON: {e}") from e


@app.command()
def init(ctx: typer.Context) -> None:
    """Create the application folder tree if it does not exist."""
    folders = _run(ctx, lambda store: store.ensure_layout())

    table = Table(title="Folders")
    table.add_column("Name")
    table.add_column("Folder id")
    for name, folder_id in folders.items():
        table.add_row(name, folder_id)
    console.print(table)


@app.command()
def resolve(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Logical folder name"),
    parent: Optional[str] = typer.Option(None, help="Parent folder id (account root if omitted)"),
) -> None:
    """Resolve a folder name to its id, creating the folder on first use."""
    folder_id = _run(ctx, lambda store: store.resolve(name, parent))
    console.print(folder_id)


@app.command()
def put(
    ctx: typer.Context,
    entity_id: str = typer.Argument(..., help="Entity id"),
    data_file: Path = typer.Argument(..., help="JSON file with the entity"),
    folder: Optional[str] = typer.Option(None, help="Sub-folder of the root"),
    ref_id: Optional[str] = typer.Option(None, "--ref-id", help="Cached file reference"),
) -> None:
    """Save one entity and wait for the manifest to catch up."""
    data = _read_json(data_file)
    if not isinstance(data, dict):
        raise typer.BadParameter(f"Expected a JSON object in {data_file}")

    async def _put(store: DocumentStore):
        ref = await store.save(await _folder(store, folder), entity_id, data, ref_id=ref_id)
        await store.flush()
        return ref

    ref = _run(ctx, _put)
    console.print(f"[green]Saved {entity_id} as {ref.id}[/green]")


@app.command()
def get(
    ctx: typer.Context,
    entity_id: str = typer.Argument(..., help="Entity id"),
    folder: Optional[str] = typer.Option(None, help="Sub-folder of the root"),
) -> None:
    """Print one entity as JSON."""

    async def _get(store: DocumentStore):
        return await store.load(await _folder(store, folder), entity_id)

    data = _run(ctx, _get)
    if data is None:
        console.print(f"[yellow]No entity {entity_id}[/yellow]")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(data))


@app.command("ls")
def list_entities(
    ctx: typer.Context,
    folder: Optional[str] = typer.Option(None, help="Sub-folder of the root"),
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the manifest cache"),
) -> None:
    """List entities from the manifest index."""

    async def _ls(store: DocumentStore):
        return await store.list_entries(await _folder(store, folder), force_refresh=refresh)

    entries = _run(ctx, _ls)
    table = Table(title=f"Entities ({len(entries)})")
    table.add_column("Id", style="cyan")
    table.add_column("Ref")
    table.add_column("Summary")
    for entry in entries:
        summary = ", ".join(f"{k}={v}" for k, v in entry.summary.items())
        table.add_row(entry.id, entry.ref_id or "-", summary)
    console.print(table)


@app.command()
def push(
    ctx: typer.Context,
    data_file: Path = typer.Argument(..., help="JSON array of entities, each with an id"),
    folder: Optional[str] = typer.Option(None, help="Sub-folder of the root"),
) -> None:
    """Save many entities through the background sync queue."""
    raw = _read_json(data_file)
    if not isinstance(raw, list) or not all(isinstance(item, dict) and item.get("id") for item in raw):
        raise typer.BadParameter(f"Expected a JSON array of objects with an id in {data_file}")

    async def _push(store: DocumentStore):
        target = await _folder(store, folder)
        queue = store.sync_queue
        for item in raw:
            queue.enqueue(target, str(item["id"]), item)
        await queue.join()
        await store.flush()
        return list(queue.dropped)

    dropped = _run(ctx, _push)
    if dropped:
        console.print(f"[red]Dropped {len(dropped)} saves: {', '.join(entity_id for _, entity_id in dropped)}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Synced {len(raw)} entities[/green]")


@app.command()
def rebuild(
    ctx: typer.Context,
    folder: Optional[str] = typer.Option(None, help="Sub-folder of the root"),
) -> None:
    """Rebuild the manifest index by reading every entity file."""

    async def _rebuild(store: DocumentStore):
        return await store.rebuild(await _folder(store, folder))

    index = _run(ctx, _rebuild)
    console.print(f"[green]Manifest rebuilt with {len(index.entries)} entries[/green]")


@app.command()
def schedule(
    ctx: typer.Context,
    schedule_date: str = typer.Argument(..., help="Date as YYYY-MM-DD"),
    jobs_file: Path = typer.Argument(..., help="JSON array of jobs"),
) -> None:
    """Save a daily schedule and its jobs."""
    raw = _read_json(jobs_file)
    if not isinstance(raw, list):
        raise typer.BadParameter(f"Expected JSON array in {jobs_file}")
    try:
        jobs = [Job.model_validate(item) for item in raw]
    except ValidationError as e:
        raise typer.BadParameter(f"{jobs_file} has invalid jobs: {e.error_count()} errors\n{e}") from e

    async def _save(store: DocumentStore):
        result = await ScheduleStore(store).save_daily_schedule(schedule_date, jobs)
        await store.flush()
        return result

    result = _run(ctx, _save)
    console.print(f"[green]Saved {result.total_jobs} jobs for {result.date}[/green]")


@app.command()
def calendar(ctx: typer.Context) -> None:
    """Show the dates that have saved schedules."""
    index = _run(ctx, lambda store: ScheduleStore(store).get_calendar())

    table = Table(title="Calendar")
    table.add_column("Date")
    table.add_column("Jobs", justify="right")
    for day, count in sorted(index.dates.items()):
        table.add_row(day, str(count))
    console.print(table)


if __name__ == "__main__":
    app()
