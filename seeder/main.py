from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from seeder.config import get_settings
from seeder.domain.errors import SeederError, ValidationError
from seeder.orchestrator import DatasetOrchestrator
from seeder.reporter import print_report, print_statistics
from seeder.utils.logging import configure_logging

app = typer.Typer(help="API-first synthetic data seeder for the customer and account services.")

T = TypeVar("T")

EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


def _execute(operation: Callable[[DatasetOrchestrator], Awaitable[T]]) -> T:
    """
    Run one orchestrator operation on a fresh event loop.

    Seeder errors become a JSON error payload on stderr and a non-zero exit
    code; the clients are closed either way.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    async def _run() -> T:
        async with DatasetOrchestrator.from_settings(settings) as orchestrator:
            return await operation(orchestrator)

    try:
        return asyncio.run(_run())
    except SeederError as exc:
        typer.echo(json.dumps(exc.to_payload()), err=True)
        raise typer.Exit(code=EXIT_INVALID_INPUT if isinstance(exc, ValidationError) else EXIT_FAILURE)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"customers={settings.customer_service_url} | accounts={settings.account_service_url} | "
        f"batch={settings.seeding_batch_size} "
        f"concurrency=({settings.seeding_customer_concurrency},{settings.seeding_account_concurrency}) "
        f"delay={settings.seeding_request_delay_ms}ms retries={settings.retry_attempts}"
    )


@app.command()
def customers(
    count: int = typer.Argument(..., help="Number of customers to generate (1-50,000)."),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
) -> None:
    """
    Generate COUNT customers through the customer service.
    """
    report = _execute(lambda o: o.generate_customers(count))
    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        print_report(report)


@app.command()
def accounts(
    min_per_customer: int = typer.Option(1, "--min", help="Minimum accounts per customer."),
    max_per_customer: int = typer.Option(4, "--max", help="Maximum accounts per customer."),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
) -> None:
    """
    Generate accounts for every customer that already exists downstream.
    """
    report = _execute(
        lambda o: o.generate_accounts_for_existing_customers(min_per_customer, max_per_customer)
    )
    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        print_report(report)


@app.command("full-dataset")
def full_dataset(
    customer_count: int = typer.Option(1000, "--customers", "-c", help="Customers to generate."),
    min_per_customer: int = typer.Option(1, "--min", help="Minimum accounts per customer."),
    max_per_customer: int = typer.Option(4, "--max", help="Maximum accounts per customer."),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
) -> None:
    """
    Generate customers, then accounts bound to the customers that were created.
    """
    report = _execute(
        lambda o: o.generate_full_dataset(customer_count, min_per_customer, max_per_customer)
    )
    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        print_report(report)


@app.command()
def export(
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Directory for the CSV files (default from settings).",
    ),
) -> None:
    """
    Export customers.csv, accounts.csv and jmeter_testdata.csv.
    """
    target = output_dir or Path(get_settings().export_dir)
    written = _execute(lambda o: o.exporter.write_all(target))
    for name, path in written.items():
        typer.echo(f"{name} -> {path}")


@app.command()
def stats() -> None:
    """
    Show live record counts and uniqueness registry sizes.
    """
    print_statistics(_execute(lambda o: o.statistics()))


@app.command()
def cleanup() -> None:
    """
    Delete every account and customer held by the downstream services.
    """
    result = _execute(lambda o: o.delete_all())
    typer.echo(json.dumps(result, indent=2))


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address."),
    port: int = typer.Option(8082, "--port", "-p", help="Bind port."),
) -> None:
    """
    Serve the HTTP API (`/seed/*`) with uvicorn.
    """
    import uvicorn

    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    uvicorn.run("seeder.api:app", host=host, port=port)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
