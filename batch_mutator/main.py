from __future__ import annotations

import json
import sys
from typing import Optional

import typer

from batch_mutator.config import get_settings
from batch_mutator.errors import BatchMutatorError
from batch_mutator.orchestrator import build_store, run_population, run_update
from batch_mutator.reporter import print_report
from batch_mutator.utils.logging import configure_logging

app = typer.Typer(help="Batch Mutator CLI.")


def _configure() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"batch={settings.batch_size} fetch={settings.fetch_size} "
        f"population={settings.population_count} actor={settings.audit_actor}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create the records table if it does not exist.
    """
    _configure()
    build_store().init_schema()
    typer.echo("Schema ready.")


@app.command()
def populate(
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        help="Number of records to create (default from settings).",
    ),
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        "-b",
        help="Records per insert transaction (default from settings).",
    ),
) -> None:
    """
    Seed the store with unprocessed records.
    """
    _configure()
    report = run_population(count=count, batch_size=batch_size)
    print_report(report, title="Population Load")


@app.command()
def update(
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        "-b",
        help="Records per write transaction (default from settings).",
    ),
    fetch_size: Optional[int] = typer.Option(
        None,
        "--fetch-size",
        "-f",
        help="Rows per cursor fetch (default from settings).",
    ),
    persist: bool = typer.Option(
        True,
        "--persist/--no-persist",
        help="Write the run report to results/.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
) -> None:
    """
    Run the chunked update processor in the foreground.
    """
    _configure()
    report = run_update(batch_size=batch_size, fetch_size=fetch_size, persist=persist)
    if as_json:
        typer.echo(json.dumps(report, indent=2))
    else:
        print_report(report)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind to."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind to."),
) -> None:
    """
    Start the HTTP trigger API.
    """
    import uvicorn

    settings = get_settings()
    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    typer.echo(f"Starting API server on {bind_host}:{bind_port}")
    uvicorn.run("batch_mutator.api:app", host=bind_host, port=bind_port)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
    except BatchMutatorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
