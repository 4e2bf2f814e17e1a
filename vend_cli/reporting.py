"""Reporting for bulk runs."""

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from rich.console import Console
from rich.table import Table

from .config import FailedRequest, RunStats
from .csv_io import CSVProcessor


class Reporter:
    """Tracks results of a bulk run and reports on them."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.stats = RunStats()
        self.failures: List[FailedRequest] = []

    def add_success(self) -> None:
        self.stats.add_success()

    def add_skip(self) -> None:
        self.stats.add_skip()

    def add_failure(self, failure: FailedRequest) -> None:
        """Record a failed request."""
        self.stats.add_failure()
        self.failures.append(failure)

    def print_export_summary(self, counts: Dict[str, int]) -> None:
        """Print how many records were exported per resource."""
        table = Table(title="EXPORT SUMMARY", show_header=True, header_style="bold magenta")
        table.add_column("Resource", style="cyan", no_wrap=True)
        table.add_column("Records", justify="right", style="green")

        for resource, count in counts.items():
            table.add_row(resource, str(count))

        self.console.print(table)

    def print_summary(self, dry_run: bool = False) -> None:
        """Print a summary of the processing results."""
        title = "DRY RUN SUMMARY" if dry_run else "PROCESSING SUMMARY"

        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("Metric", style="cyan", no_wrap=True)
        table.add_column("Count", justify="right", style="green")

        table.add_row("Total", str(self.stats.total))
        table.add_row("Succeeded", str(self.stats.succeeded))
        table.add_row("Skipped", str(self.stats.skipped))
        table.add_row("Failed", str(self.stats.failed))

        self.console.print(table)

        if self.failures:
            self.console.print(f"\n[red]Found {len(self.failures)} errors:[/red]")
            error_table = Table(show_header=True, header_style="bold red")
            error_table.add_column("ID", style="yellow")
            error_table.add_column("Operation", style="cyan")
            error_table.add_column("Error", style="red")

            for failure in self.failures[:10]:  # Show first 10 errors
                reason = failure.reason
                error_table.add_row(
                    failure.entity_id,
                    failure.operation,
                    reason[:80] + "..." if len(reason) > 80 else reason,
                )

            if len(self.failures) > 10:
                error_table.add_row("...", "...", f"and {len(self.failures) - 10} more errors")

            self.console.print(error_table)

    def failures_path(self, out_dir: Path, domain_prefix: str) -> Path:
        """Timestamped path for the failure report."""
        stamp = int(datetime.now().timestamp())
        return out_dir / f"{domain_prefix}_failed_requests_{stamp}.csv"

    def write_failures(self, out_dir: Path, domain_prefix: str,
                       csv_processor: Optional[CSVProcessor] = None) -> Optional[Path]:
        """Write the failure report, if there is anything to report."""
        if not self.failures:
            return None

        processor = csv_processor or CSVProcessor(self.console)
        path = self.failures_path(out_dir, domain_prefix)
        processor.write_failures_csv(self.failures, path)
        return path
