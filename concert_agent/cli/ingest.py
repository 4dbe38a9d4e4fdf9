"""
Ingestion CLI Commands
======================

CLI commands for running batches, backfilling artwork and managing stored
concerts.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Optional

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from concert_agent.core.enums import BatchState
from concert_agent.db.engine import get_session, init_db
from concert_agent.db.repositories import ConcertRepository, DeletionRepository
from concert_agent.ingestion.context import RunContext
from concert_agent.ingestion.enricher import ImageEnricher
from concert_agent.ingestion.registry import get_default_registry
from concert_agent.ingestion.runner import build_chain_dispatcher, open_scheduler
from concert_agent.ingestion.scheduler import BatchReport
from concert_agent.services.extraction import MissingCredentialsError

console = Console()
scrape_app = typer.Typer(help="Batch scraping commands")
images_app = typer.Typer(help="Artwork commands")
concerts_app = typer.Typer(help="Stored concert management commands")


def _display_report(report: BatchReport) -> None:
    """Display a batch report."""
    color = {
        BatchState.COMPLETED: "green",
        BatchState.TIME_EXHAUSTED: "yellow",
        BatchState.QUOTA_EXHAUSTED: "yellow",
        BatchState.FAILED: "red",
    }.get(report.state, "white")

    rprint(f"\n[bold]Batch {report.batch}/{report.total_batches}[/bold] (page {report.page})")
    rprint(f"  Stop reason: [{color}]{report.stop_reason}[/{color}]")
    rprint(f"  Tasks: {report.tasks_run}/{report.tasks_total}")
    rprint(f"  Found: {report.found}")
    rprint(f"  Upserted: {report.persisted}")
    rprint(f"  Elapsed: {report.elapsed:.1f}s")

    chain = report.chain
    if chain.dispatched:
        rprint(f"  Chain: [green]batch {chain.batch} page {chain.page} dispatched[/green]")
    else:
        rprint(f"  Chain: [dim]{chain.reason}[/dim]")

    dropped = report.counters.get("dropped") or {}
    if dropped:
        rprint("\n[bold]Dropped:[/bold]")
        for reason, count in sorted(dropped.items()):
            rprint(f"  • {reason}: {count}")

    if report.errors:
        rprint(f"\n[bold red]Errors ({len(report.errors)}):[/bold red]")
        for error in report.errors[:10]:
            rprint(f"  • {error}")
        if len(report.errors) > 10:
            rprint(f"  ... and {len(report.errors) - 10} more")


async def _run_batch(batch: int, page: int, chain: bool, drain: float) -> BatchReport:
    registry = get_default_registry()
    dispatcher = build_chain_dispatcher(registry) if chain else None
    try:
        async with open_scheduler(registry=registry, dispatcher=dispatcher) as scheduler:
            report = await scheduler.run(batch, page=page, chain=chain)
        if dispatcher is not None:
            await dispatcher.drain(timeout=drain)
    finally:
        if dispatcher is not None:
            await dispatcher.aclose()
    return report


@scrape_app.command("run")
def run_batch(
    batch: int = typer.Option(1, "--batch", "-b", help="Batch number to run"),
    page: int = typer.Option(1, "--page", "-p", help="Discovery page cursor"),
    chain: bool = typer.Option(False, "--chain", help="Trigger the next batch when done"),
    drain: float = typer.Option(
        10.0, "--drain", help="Seconds to wait for the chain trigger before exiting"
    ),
) -> None:
    """
    Run one batch in the foreground.

    Examples:
        concert-agent scrape run --batch 18
        concert-agent scrape run -b 1 --chain
    """
    registry = get_default_registry()
    if not 1 <= batch <= registry.total_batches:
        rprint(f"[red]Error:[/red] Batch must be between 1 and {registry.total_batches}")
        raise typer.Exit(1)

    init_db()
    try:
        with console.status(f"[bold blue]Running batch {batch}...[/bold blue]"):
            report = asyncio.run(_run_batch(batch, page, chain, drain))
    except MissingCredentialsError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _display_report(report)
    if report.state == BatchState.FAILED:
        raise typer.Exit(1)


@scrape_app.command("plan")
def show_plan() -> None:
    """
    List the numbered batch plan.

    Examples:
        concert-agent scrape plan
    """
    registry = get_default_registry()
    config = registry.global_config

    table = Table(title=f"Batch Plan ({registry.total_batches} batches)")
    table.add_column("Batch", justify="right", style="bold")
    table.add_column("Tasks")
    table.add_column("Count", justify="right")

    for descriptor in registry.plan():
        names = ", ".join(task.name for task in descriptor.tasks) or "[dim](all sources disabled)[/dim]"
        table.add_row(str(descriptor.number), names, str(len(descriptor.tasks)))

    console.print(table)
    rprint(
        f"\nTime budget {config.time_budget_seconds:.0f}s of {config.execution_ceiling_seconds:.0f}s, "
        f"{config.task_delay_seconds}s between tasks"
    )
    chain = registry.chain_config
    status = "[green]enabled[/green]" if chain.enabled else "[yellow]disabled[/yellow]"
    rprint(f"Chaining: {status} via {chain.trigger.value}")


@scrape_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the arq worker that runs queued batches.

    Examples:
        concert-agent scrape worker
        concert-agent scrape worker --burst
    """
    from arq import run_worker

    from concert_agent.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting batch worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    init_db()
    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running and REDIS_HOST/REDIS_PORT are set")
        raise typer.Exit(1)


async def _backfill_images(limit: int | None) -> tuple[int, int, int]:
    registry = get_default_registry()
    config = registry.global_config
    ctx = RunContext()

    with get_session() as session:
        repo = ConcertRepository(session)
        concerts = repo.upcoming_without_image()
        if limit:
            concerts = concerts[:limit]

        updated = 0
        async with httpx.AsyncClient(timeout=15.0) as client:
            enricher = ImageEnricher.with_default_chain(
                client,
                config.user_agent,
                interval_seconds=config.image_lookup_interval_seconds,
            )
            for concert in concerts:
                url = await enricher.enrich(concert.artist, ctx)
                if url and repo.set_image(concert.id, url):
                    updated += 1
        session.commit()

    return len(concerts), len(ctx.image_cache), updated


@images_app.command("backfill")
def backfill_images(
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum concerts to process"),
) -> None:
    """
    Find artwork for stored upcoming concerts that have none.

    Each distinct artist is looked up once; comedy events are skipped.

    Examples:
        concert-agent images backfill
        concert-agent images backfill --limit 100
    """
    init_db()
    with console.status("[bold blue]Looking up artwork...[/bold blue]"):
        total, artists, updated = asyncio.run(_backfill_images(limit))

    if total == 0:
        rprint("[green]All upcoming concerts already have images[/green]")
        return
    rprint(f"\n[bold]Processed {total} concerts ({artists} artists)[/bold]")
    rprint(f"  Updated: [green]{updated}[/green]")
    rprint(f"  Not found: {total - updated}")


@concerts_app.command("delete")
def delete_concerts(
    concert_id: Optional[str] = typer.Option(None, "--id", help="Concert ID"),
    artist: Optional[str] = typer.Option(None, "--artist", "-a", help="Artist name (substring)"),
    venue: Optional[str] = typer.Option(None, "--venue", help="Venue name (substring)"),
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Event date (YYYY-MM-DD, UTC)"),
    deleted_by: Optional[str] = typer.Option(None, "--by", help="Operator name stored on the tombstone"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """
    Delete concerts and make sure future scrapes never re-add them.

    Examples:
        concert-agent concerts delete --id 3f2a...
        concert-agent concerts delete --artist "Robyn" --date 2026-06-12
    """
    if not (concert_id or artist or venue or day):
        rprint("[red]Error:[/red] Give --id or at least one of --artist/--venue/--date")
        raise typer.Exit(1)

    event_day = None
    if day:
        try:
            event_day = date.fromisoformat(day)
        except ValueError:
            rprint(f"[red]Error:[/red] Invalid date '{day}', expected YYYY-MM-DD")
            raise typer.Exit(1)

    init_db()
    with get_session() as session:
        repo = ConcertRepository(session)
        if concert_id:
            concert = repo.get_by_id(concert_id)
            matches = [concert] if concert else []
        else:
            matches = repo.find(artist=artist, venue=venue, day=event_day)

        if not matches:
            rprint("[yellow]No matching concerts[/yellow]")
            raise typer.Exit(1)

        table = Table(title="Concerts to delete")
        table.add_column("ID", style="dim")
        table.add_column("Artist", style="bold")
        table.add_column("Venue")
        table.add_column("Date")
        for concert in matches:
            table.add_row(concert.id, concert.artist, concert.venue, concert.date.isoformat())
        console.print(table)

        if not yes and not typer.confirm(f"Delete {len(matches)} concert(s)?"):
            raise typer.Exit(0)

        deleted = repo.delete_with_tombstones(matches, deleted_by=deleted_by)
        session.commit()

    rprint(f"[green]Deleted {deleted} concert(s); they will not be re-added[/green]")


@concerts_app.command("cleanup")
def cleanup_concerts(
    days: int = typer.Option(7, "--days", help="Remove events older than this many days"),
) -> None:
    """
    Remove events that took place in the past.

    Examples:
        concert-agent concerts cleanup
        concert-agent concerts cleanup --days 30
    """
    init_db()
    with get_session() as session:
        removed = ConcertRepository(session).delete_older_than(days=days)
        session.commit()
    rprint(f"[green]Removed {removed} past event(s)[/green]")


@concerts_app.command("deleted")
def list_deleted() -> None:
    """
    List deletion tombstones.

    Examples:
        concert-agent concerts deleted
    """
    init_db()
    with get_session() as session:
        records = DeletionRepository(session).list_all()

    if not records:
        rprint("[yellow]No deleted concerts[/yellow]")
        return

    table = Table(title=f"Deleted Concerts ({len(records)})")
    table.add_column("Artist", style="bold")
    table.add_column("Venue")
    table.add_column("Date")
    table.add_column("Deleted By")
    table.add_column("Deleted At", style="dim")
    for record in records:
        table.add_row(
            record.artist,
            record.venue,
            record.date.isoformat(),
            record.deleted_by or "-",
            record.deleted_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
