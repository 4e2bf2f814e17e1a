"""Main CLI interface for the Vend bulk data tool."""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
from rich.console import Console

from .bulk import MutationRunner, fetch_concurrently
from .clients import API_V09, API_V2, VendAPIError, VendClient
from .config import Settings, load_settings
from .csv_io import CSVProcessor, flatten_record
from .reporting import Reporter

app = typer.Typer(
    name="vendcli",
    help="Bulk export and update tool for Vend stores",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)


class Resource(str, Enum):
    customers = "customers"
    products = "products"
    sales = "sales"
    gift_cards = "gift-cards"
    store_credits = "store-credits"
    suppliers = "suppliers"
    users = "users"
    outlets = "outlets"
    registers = "registers"


class ApiVersion(str, Enum):
    v2 = API_V2
    v09 = API_V09


FETCHERS: Dict[Resource, Callable[[VendClient], List[Any]]] = {
    Resource.customers: VendClient.customers,
    Resource.products: VendClient.products,
    Resource.sales: VendClient.sales,
    Resource.gift_cards: VendClient.gift_cards,
    Resource.store_credits: VendClient.store_credits,
    Resource.suppliers: VendClient.suppliers,
    Resource.users: VendClient.users,
    Resource.outlets: VendClient.outlets,
    Resource.registers: VendClient.registers,
}


def _run(action: Callable[[], None], what: str) -> None:
    """Run a command body, turning failures into a message and exit code 1."""
    try:
        action()
    except KeyboardInterrupt:
        console.print(f"\n[yellow]{what} cancelled by user[/yellow]")
        raise typer.Exit(1)
    except (VendAPIError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]{what} failed: {e}[/red]")
        raise typer.Exit(1)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _export_path(out_dir: Path, domain_prefix: str, name: str) -> Path:
    stamp = int(datetime.now().timestamp())
    return out_dir / f"{domain_prefix}_{name}_export_{stamp}.csv"


def _to_rows(client: VendClient, records: List[Any]) -> List[Dict[str, Any]]:
    """Flatten records and, when the store timezone is known, localise timestamps."""
    rows = [flatten_record(record) for record in records]
    if not client.config.timezone:
        return rows

    for row in rows:
        for column, value in row.items():
            if not isinstance(value, str) or not value:
                continue
            if column.endswith("_at") or column.endswith("_date"):
                try:
                    row[column] = client.local_time(value).isoformat()
                except ValueError:
                    logger.debug("Leaving %s=%r as returned", column, value)
    return rows


@app.callback()
def main_options(
    ctx: typer.Context,
    domain: Optional[str] = typer.Option(None, "--domain", "-d", help="Store domain prefix (xxxx.vendhq.com)"),
    token: Optional[str] = typer.Option(None, "--token", "-t", help="Personal API token"),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Store timezone, e.g. Pacific/Auckland"),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", help="Give up after this many attempts per request"),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Give up retrying a request after this many seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global options shared by every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        "domain_prefix": domain,
        "token": token,
        "timezone": timezone,
        "max_attempts": max_attempts,
        "deadline": deadline,
    }
    try:
        ctx.obj = load_settings(**{key: value for key, value in overrides.items() if value is not None})
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def whoami(ctx: typer.Context):
    """Show the user the API token belongs to."""
    settings = _settings(ctx)

    def action() -> None:
        with VendClient(settings.client_config()) as client:
            user = client.current_user()
        console.print(f"[green]Authenticated as {user.display_name or user.username} ({user.email or 'no email'})[/green]")
        console.print(f"  Account type: {user.account_type or 'unknown'}")

    _run(action, "Authentication check")


@app.command()
def export(
    ctx: typer.Context,
    resources: List[Resource] = typer.Argument(..., help="Resources to export"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Output directory"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1, max=20, help="Resources fetched in parallel"),
):
    """Export one or more resources to CSV."""
    settings = _settings(ctx)
    target_dir = out_dir or settings.output_dir

    def action() -> None:
        csv_processor = CSVProcessor(console)
        reporter = Reporter(console)

        with VendClient(settings.client_config()) as client:
            # dict.fromkeys drops repeats but keeps order
            wanted = list(dict.fromkeys(resources))
            fetchers = {resource.value: (lambda r=resource: FETCHERS[r](client)) for resource in wanted}

            console.print(f"[cyan]Retrieving {', '.join(fetchers)} from Vend...[/cyan]")
            results = fetch_concurrently(fetchers, concurrency or settings.concurrency, console)

            counts = {}
            for name, records in results.items():
                path = _export_path(target_dir, client.config.domain_prefix, name.replace("-", "_"))
                counts[name] = csv_processor.write_records_csv(_to_rows(client, records), path)

        reporter.print_export_summary(counts)

    _run(action, "Export")


@app.command("audit-log")
def audit_log(
    ctx: typer.Context,
    date_from: str = typer.Option(..., "--from", help="Start of the range, e.g. 2024-01-01T00:00:00"),
    date_to: str = typer.Option(..., "--to", help="End of the range, e.g. 2024-01-31T23:59:59"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Output directory"),
):
    """Export audit log events for a date range."""
    settings = _settings(ctx)
    target_dir = out_dir or settings.output_dir

    def action() -> None:
        with VendClient(settings.client_config()) as client:
            console.print("[cyan]Retrieving audit log from Vend...[/cyan]")
            events = client.audit_log(date_from, date_to)
            path = _export_path(target_dir, client.config.domain_prefix, "auditlog")
            CSVProcessor(console).write_records_csv(_to_rows(client, events), path)

    _run(action, "Audit log export")


@app.command()
def delete(
    ctx: typer.Context,
    resource: str = typer.Argument(..., help="API resource, e.g. customers or products"),
    input_file: Path = typer.Option(..., "--file", "-f", help="CSV of ids, no header"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Where to write the failure report"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List what would be deleted"),
    api: ApiVersion = typer.Option(ApiVersion.v2, "--api", help="API version to delete through (2.0 or 0.9)"),
):
    """Delete every record listed in a CSV of ids."""
    settings = _settings(ctx)
    target_dir = out_dir or settings.output_dir

    def action() -> None:
        ids = CSVProcessor(console).read_id_csv(input_file)
        reporter = Reporter(console)
        runner = MutationRunner("delete", reporter, console)

        with VendClient(settings.client_config()) as client:
            runner.run(ids, lambda entity_id: client.delete_entity(resource, entity_id, api.value), dry_run=dry_run)
            report = reporter.write_failures(target_dir, client.config.domain_prefix)

        reporter.print_summary(dry_run)
        if report:
            console.print(f"[yellow]There were some errors, see {report}[/yellow]")

    _run(action, "Delete")


@app.command()
def post(
    ctx: typer.Context,
    resource: str = typer.Argument(..., help="API resource, e.g. customers"),
    input_file: Path = typer.Option(..., "--file", "-f", help="JSON object or list of objects"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Where to write the failure report"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List what would be created"),
    api: ApiVersion = typer.Option(ApiVersion.v2, "--api", help="API version to post to (2.0 or 0.9, e.g. 0.9 for supplier)"),
):
    """Create one record per JSON object in the input file."""
    settings = _settings(ctx)
    target_dir = out_dir or settings.output_dir

    def action() -> None:
        bodies = CSVProcessor(console).read_json_records(input_file)
        reporter = Reporter(console)
        runner = MutationRunner("post", reporter, console)

        with VendClient(settings.client_config()) as client:
            runner.run(
                list(enumerate(bodies, 1)),
                lambda item: client.create_entity(resource, item[1], api.value),
                describe=lambda item: str(item[1].get("id") or f"record {item[0]}"),
                dry_run=dry_run,
            )
            report = reporter.write_failures(target_dir, client.config.domain_prefix)

        reporter.print_summary(dry_run)
        if report:
            console.print(f"[yellow]There were some errors, see {report}[/yellow]")

    _run(action, "Post")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
