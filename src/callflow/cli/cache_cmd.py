"""CLI commands for inspecting and managing the cache.

Usage:
    callflow cache health
    callflow cache stats --business acme
    callflow cache invalidate acme
"""

from __future__ import annotations

import asyncio

import orjson
import typer
from rich.console import Console

from callflow.config import settings
from callflow.engine import CallflowEngine
from callflow.models.cache import CacheStats, HealthReport, InvalidationReport
from callflow.records import InMemoryRecordStore

app = typer.Typer(help="Inspect and manage the Redis cache", no_args_is_help=True)
console = Console()


def _engine() -> CallflowEngine:
    return CallflowEngine.from_settings(settings, InMemoryRecordStore())


async def _health() -> HealthReport:
    async with _engine() as engine:
        return await engine.health_check()


async def _stats(business: str | None) -> CacheStats:
    async with _engine() as engine:
        return await engine.get_cache_stats(business)


async def _invalidate(business: str) -> InvalidationReport:
    async with _engine() as engine:
        return await engine.invalidate_business_cache(business)


@app.command()
def health() -> None:
    """Check that the cache backend is reachable."""
    report = asyncio.run(_health())
    if report.status == "healthy":
        console.print(f"[green]healthy[/green] (latency {report.latency_ms:.2f}ms)")
        memory = report.details.get("memory", {})
        if "used" in memory:
            console.print(f"Memory: {memory['used']} (peak {memory['peak']})")
        return

    console.print(f"[red]unhealthy[/red]: {report.details.get('error', 'unknown error')}")
    raise typer.Exit(1)


@app.command()
def stats(
    business: str | None = typer.Option(
        None,
        "--business",
        "-b",
        help="Also count the cached keys of one business context",
    ),
) -> None:
    """Show cache statistics as JSON."""
    result = asyncio.run(_stats(business))
    typer.echo(orjson.dumps(result.model_dump(mode="json"), option=orjson.OPT_INDENT_2))


@app.command()
def invalidate(
    business: str = typer.Argument(..., help="Business context whose cache to clear"),
) -> None:
    """Clear every cached combination and trigger of one business context."""
    report = asyncio.run(_invalidate(business))
    if report.degraded:
        console.print(f"[yellow]Cache unavailable:[/yellow] {report.reason}")
        raise typer.Exit(1)

    console.print(
        f"Invalidated {report.total} entries for [bold]{business}[/bold] "
        f"({report.combinations} combinations, {report.triggers} triggers, "
        f"{report.evaluations} evaluations)"
    )
