"""CLI commands for the callflow engine.

Provides command-line interface using Typer:
- callflow optimize: Compute a question combination for a request
- callflow cache health: Check Redis connectivity
- callflow cache stats: Show cache statistics
- callflow cache invalidate: Clear one business context's cache

Usage:
    callflow --help
    callflow optimize request.json --questions questions.json
    callflow cache invalidate acme
"""

import typer

from callflow.cli.cache_cmd import app as cache_app
from callflow.cli.optimize_cmd import optimize
from callflow.config import settings
from callflow.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="callflow",
    help="Callflow: question combination optimizer and trigger engine",
    no_args_is_help=True,
)

# Add subcommands
app.command(name="optimize")(optimize)
app.add_typer(cache_app, name="cache")


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Callflow: question combination optimizer and trigger engine."""
    configure_logging(
        json_format=settings.log_json,
        level="DEBUG" if verbose else settings.log_level,
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
