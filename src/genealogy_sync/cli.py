"""CLI interface for Genealogy Sync."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

app = typer.Typer(
    name="genealogy-sync",
    help="Cross-provider genealogy reconciliation and ancestor sync",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    "match": "green",
    "different": "yellow",
    "missing_local": "cyan",
    "missing_provider": "dim",
}


def get_config(data_dir: Path | None = None):
    """Load configuration from environment (and a .env file if present)."""
    from dotenv import load_dotenv

    load_dotenv()

    # Config reads env at import; import after load_dotenv
    from dataclasses import replace

    from .config import SyncConfig

    config = SyncConfig()
    if data_dir is not None:
        config = replace(config, data_dir=data_dir)
    return config


def get_service(data_dir: Path | None = None):
    from .service import ReconciliationService

    return ReconciliationService(get_config(data_dir))


def _parse_provider(value: str):
    from .models.provider import Provider

    try:
        return Provider(value.lower())
    except ValueError:
        console.print(f"[red]Unknown provider. Choose from: {[p.value for p in Provider]}[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for library output"),
):
    """Configure logging for every command."""
    from .logging import configure_logging

    configure_logging(log_level.upper(), json=False)


@app.command()
def compare(
    db_id: str = typer.Argument(..., help="Local database ID"),
    person_id: str = typer.Argument(..., help="Canonical person ID"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw report as JSON"),
):
    """Compare a person's local record with every linked provider."""
    service = get_service(data_dir)

    async def run():
        try:
            return await service.compare_across_platforms(db_id, person_id)
        finally:
            await service.aclose()

    result = asyncio.run(run())
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)

    report = result.data
    if as_json:
        console.print_json(report.model_dump_json())
        return

    linked = [p for p in report.providers if p.is_linked]
    table = Table(title=f"{report.display_name or report.person_id}")
    table.add_column("Field")
    table.add_column("Local")
    for info in linked:
        table.add_column(f"{info.provider.value} ({info.external_id})")

    for row in report.fields:
        cells = [row.label, row.local_value or ""]
        for info in linked:
            pv = row.provider_values[info.provider]
            style = STATUS_STYLES.get(pv.status.value, "")
            cells.append(f"[{style}]{pv.value or '-'}[/{style}]" if style else (pv.value or "-"))
        table.add_row(*cells)
    console.print(table)

    summary = report.summary
    missing = ", ".join(f"{p.value}: {len(f)}" for p, f in summary.missing_on_providers.items()) or "none"
    console.print(
        Panel(
            f"Matching: {summary.matching_fields}/{summary.total_fields}\n"
            f"Differing: {summary.differing_fields}\n"
            f"Missing on providers: {missing}",
            title="Summary",
        )
    )


def _parse_generations(value: str):
    if value == "full":
        return value
    try:
        return int(value)
    except ValueError:
        console.print("[red]--generations must be a number or 'full'[/red]")
        raise typer.Exit(1)


@app.command()
def sync(
    db_id: str = typer.Argument(..., help="Local database ID"),
    root_id: str = typer.Argument(..., help="Root person to start from"),
    generations: str = typer.Option("5", "--generations", "-g", help="Generation count or 'full'"),
    provider: str = typer.Option("ancestry", "--provider", "-p", help="Provider to sync against"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Walk the queue without hints or downloads"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Walk the ancestor graph and refresh provider data person by person."""
    prov = _parse_provider(provider)
    max_generations = _parse_generations(generations)

    service = get_service(data_dir)
    console.print(Panel(f"[bold]Root:[/bold] {root_id}  [bold]Provider:[/bold] {prov.value}", title="Sync"))

    async def run():
        last = None
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Building queue...", total=None)
                async for event in service.run_sync(db_id, root_id, max_generations, prov, dry_run):
                    last = event
                    if event.type.value == "queue_built":
                        progress.update(task, total=event.total_count)
                    progress.update(task, completed=event.processed_count, description=event.message)
        finally:
            await service.aclose()
        return last

    last = asyncio.run(run())
    if last is None:
        raise typer.Exit(1)

    table = Table(title="Sync Statistics")
    table.add_column("Metric")
    table.add_column("Value")
    for key, value in last.stats.model_dump().items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)

    if last.type.value == "error":
        console.print(f"[red]Error: {last.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{last.message}[/green]")


@app.command("suggest-parents")
def suggest_parents(
    db_id: str = typer.Argument(..., help="Local database ID"),
    person_id: str = typer.Argument(..., help="Child person ID"),
    provider: str = typer.Option("familysearch", "--provider", "-p", help="Provider"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Show parent link suggestions without applying them."""
    prov = _parse_provider(provider)
    service = get_service(data_dir)
    result = service.suggest_parent_links(db_id, person_id, prov)
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Parent link suggestions ({prov.value})")
    table.add_column("Role")
    table.add_column("Local parent")
    table.add_column("Provider ID")
    table.add_column("Provider name")
    table.add_column("Confidence")
    for s in result.data.suggestions:
        table.add_row(
            s.role.value,
            f"{s.local_name or ''} ({s.local_parent_id})",
            s.external_id,
            s.provider_name or "",
            f"{s.confidence:.2f}",
        )
    console.print(table)
    for skipped in result.data.skipped:
        console.print(f"[dim]{skipped.role.value}: skipped ({skipped.reason.value})[/dim]")


@app.command("suggest-ancestors")
def suggest_ancestors(
    db_id: str = typer.Argument(..., help="Local database ID"),
    root_id: str = typer.Argument(..., help="Root person to start from"),
    generations: str = typer.Option("5", "--generations", "-g", help="Generation count or 'full'"),
    provider: str = typer.Option("familysearch", "--provider", "-p", help="Provider"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Show parent link suggestions for a person and all their ancestors."""
    prov = _parse_provider(provider)
    max_generations = _parse_generations(generations)
    service = get_service(data_dir)
    result = service.suggest_ancestor_links(db_id, root_id, prov, max_generations)
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)

    data = result.data
    table = Table(title=f"Ancestor link suggestions ({prov.value})")
    table.add_column("Child")
    table.add_column("Role")
    table.add_column("Local parent")
    table.add_column("Provider ID")
    table.add_column("Confidence")
    for s in data.suggestions:
        table.add_row(
            s.child_id,
            s.role.value,
            f"{s.local_name or ''} ({s.local_parent_id})",
            s.external_id,
            f"{s.confidence:.2f}",
        )
    console.print(table)
    console.print(
        f"Visited {data.persons_visited} persons over {data.generations_traversed} generations: "
        f"{data.total_suggested} suggested, {data.total_skipped} skipped"
    )


@app.command()
def link(
    db_id: str = typer.Argument(..., help="Local database ID"),
    person_id: str = typer.Argument(..., help="Child person ID"),
    provider: str = typer.Option("familysearch", "--provider", "-p", help="Provider"),
    role: str = typer.Option(None, "--role", "-r", help="Only apply the father or mother suggestion"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Apply parent link suggestions as identity mappings."""
    prov = _parse_provider(provider)
    service = get_service(data_dir)
    result = service.suggest_parent_links(db_id, person_id, prov)
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)

    suggestions = [s for s in result.data.suggestions if role is None or s.role.value == role.lower()]
    if not suggestions:
        console.print("[yellow]No suggestions to apply[/yellow]")
        return

    failed = False
    for s in suggestions:
        applied = service.apply_parent_link(db_id, s)
        if applied.success:
            console.print(f"[green]Linked {s.local_parent_id} -> {prov.value} {s.external_id}[/green]")
        else:
            failed = True
            console.print(f"[red]{s.local_parent_id}: {applied.error}[/red]")
    if failed:
        raise typer.Exit(1)


@app.command("apply-fields")
def apply_fields(
    db_id: str = typer.Argument(..., help="Local database ID"),
    person_id: str = typer.Argument(..., help="Person ID"),
    fields: list[str] = typer.Option(..., "--field", "-f", help="Field to copy from the provider (repeatable)"),
    provider: str = typer.Option("familysearch", "--provider", "-p", help="Provider"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Copy provider values into the local record as overrides."""
    prov = _parse_provider(provider)
    service = get_service(data_dir)
    result = service.apply_provider_values(db_id, person_id, prov, fields)
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)

    table = Table(title="Apply results")
    table.add_column("Field")
    table.add_column("Result")
    table.add_column("Value")
    for outcome in result.data:
        status = "[green]applied[/green]" if outcome.applied else f"[yellow]{outcome.reason}[/yellow]"
        value = json.dumps(outcome.value) if isinstance(outcome.value, list) else (outcome.value or "")
        table.add_row(outcome.field, status, value)
    console.print(table)


@app.command()
def stale(
    provider: str = typer.Option("familysearch", "--provider", "-p", help="Provider"),
    days: float = typer.Option(None, "--days", help="Age threshold in days (default from config)"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """List cached provider snapshots older than a threshold."""
    prov = _parse_provider(provider)
    service = get_service(data_dir)
    result = service.stale_entries(prov, days)
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Stale {prov.value} cache entries")
    table.add_column("External ID")
    table.add_column("Person")
    table.add_column("Name")
    table.add_column("Scraped at")
    for entry in result.data:
        table.add_row(
            entry.external_id,
            entry.person_id or "",
            entry.scraped_data.name or "",
            entry.scraped_at.isoformat(),
        )
    console.print(table)
    console.print(f"{len(result.data)} stale entries")


@app.command()
def refresh(
    db_id: str = typer.Argument(..., help="Local database ID"),
    person_id: str = typer.Argument(..., help="Person ID"),
    provider: str = typer.Option("familysearch", "--provider", "-p", help="Provider"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Data directory"),
):
    """Fetch a linked person from a provider into the cache."""
    prov = _parse_provider(provider)
    service = get_service(data_dir)

    async def run():
        try:
            return await service.refresh_person(db_id, person_id, prov)
        finally:
            await service.aclose()

    result = asyncio.run(run())
    if not result.success:
        console.print(f"[red]Error: {result.error}[/red]")
        raise typer.Exit(1)
    entry = result.data
    console.print(f"[green]Cached {prov.value} {entry.external_id} ({entry.scraped_data.name or 'unnamed'})[/green]")


if __name__ == "__main__":
    app()
