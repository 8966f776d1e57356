"""CLI command for computing an optimized question combination.

Usage:
    callflow optimize request.json --questions questions.json
    callflow optimize request.json --questions questions.json --no-cache --format json
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import orjson
import typer

from callflow.config import settings
from callflow.errors import InvalidRequestError
from callflow.models.questions import CombinationRequest, OptimizedCombination
from callflow.records import InMemoryRecordStore


async def _run(
    request: CombinationRequest, records: InMemoryRecordStore, use_cache: bool
) -> tuple[OptimizedCombination, str]:
    from callflow.cache.result import Degraded
    from callflow.engine import CallflowEngine

    if not use_cache:
        from callflow.core.optimizer import optimize

        candidates = await records.fetch_questions(request.effective_questions)
        combination = optimize(
            candidates,
            request.max_duration_seconds,
            request.priority_weights,
            request.topic_preferences,
            settings.combination_max_questions,
        )
        return combination, "disabled"

    async with CallflowEngine.from_settings(settings, records) as engine:
        result = await engine.get_optimized_combination_result(request)
    if isinstance(result, Degraded):
        return result.value, f"degraded ({result.reason})"
    return result.value, "hit" if result.hit else "miss"


def optimize(
    request_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="JSON file with the combination request",
    ),
    questions_file: Path = typer.Option(
        ...,
        "--questions",
        "-q",
        exists=True,
        dir_okay=False,
        help="JSON file with candidate question metadata",
    ),
    use_cache: bool = typer.Option(
        True,
        "--cache/--no-cache",
        help="Use the Redis cache (disable to run the optimizer only)",
    ),
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Select and order questions for a call within its duration budget."""
    from rich.console import Console
    from rich.table import Table

    console = Console()

    try:
        request = CombinationRequest.parse(orjson.loads(request_file.read_bytes()))
    except InvalidRequestError as e:
        console.print(f"[red]Invalid request:[/red] {e.message} ({e.field})")
        raise typer.Exit(1) from e

    records = InMemoryRecordStore.from_json(questions_file)
    combination, cache_status = asyncio.run(_run(request, records, use_cache))

    if output_format == "json":
        typer.echo(orjson.dumps(combination.model_dump(mode="json"), option=orjson.OPT_INDENT_2))
        return

    table = Table(title=f"Combination for {request.business_context_id}")
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Topic")
    table.add_column("Priority", justify="right")
    table.add_column("Tokens", justify="right")
    for q in combination.questions:
        table.add_row(
            str(q.order), q.question_id, q.topic_category, str(q.priority), str(q.estimated_tokens)
        )
    console.print(table)

    console.print(f"Total tokens: {combination.total_tokens}")
    console.print(f"Estimated duration: {combination.estimated_duration}s")
    console.print(f"Priority score: {combination.priority_score:.2f}")
    balance = ", ".join(f"{t}={share:.2f}" for t, share in combination.group_balance.items())
    console.print(f"Topic balance: {balance or '-'}")
    console.print(f"Cache: {cache_status}")
