"""Bulk operations: parallel collection fetches and per-record mutations."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from rich.console import Console
from rich.progress import Progress

from .clients import VendAPIError
from .config import FailedRequest
from .reporting import Reporter


logger = logging.getLogger(__name__)


def fetch_concurrently(
    fetchers: Dict[str, Callable[[], List[Any]]],
    concurrency: int = 4,
    console: Optional[Console] = None,
) -> Dict[str, List[Any]]:
    """Run independent fetch-all callables in parallel and collect the results.

    Each fetcher runs its own pagination loop, so a backoff sleep only holds
    up its own thread. Results come back keyed like ``fetchers``. If any
    fetch fails, the first failure in ``fetchers`` order is raised once
    all of them have finished.
    """
    console = console or Console()
    results: Dict[str, List[Any]] = {}
    errors: Dict[str, BaseException] = {}

    with Progress(console=console, transient=True) as progress:
        task = progress.add_task("[cyan]Fetching...", total=len(fetchers))

        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as executor:
            futures = {executor.submit(fetcher): name for name, fetcher in fetchers.items()}

            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                    logger.info("Fetched %d %s", len(results[name]), name)
                except Exception as e:
                    logger.error("Failed to fetch %s: %s", name, e)
                    errors[name] = e
                progress.advance(task)

    for name in fetchers:
        if name in errors:
            raise errors[name]

    return {name: results[name] for name in fetchers}


class MutationRunner:
    """Applies one API call per record and keeps going past failures."""

    def __init__(
        self,
        operation: Literal["delete", "post", "put"],
        reporter: Optional[Reporter] = None,
        console: Optional[Console] = None,
    ):
        self.operation = operation
        self.console = console or Console()
        self.reporter = reporter or Reporter(self.console)

    def run(
        self,
        items: Sequence[Any],
        action: Callable[[Any], Any],
        describe: Callable[[Any], str] = str,
        dry_run: bool = False,
    ) -> List[FailedRequest]:
        """Call ``action`` for every item, collecting the failures."""
        failures: List[FailedRequest] = []

        with Progress(console=self.console, transient=True) as progress:
            task = progress.add_task(f"[cyan]{self.operation.title()}...", total=len(items))

            for item in items:
                label = describe(item)

                if dry_run:
                    self.reporter.add_skip()
                    self.console.print(f"[dim]- {label}: would {self.operation}[/dim]")
                    progress.advance(task)
                    continue

                try:
                    action(item)
                except VendAPIError as e:
                    failure = FailedRequest(
                        entity_id=label,
                        operation=self.operation,
                        reason=str(e),
                        status_code=e.status_code,
                    )
                    failures.append(failure)
                    self.reporter.add_failure(failure)
                    self.console.print(f"[red]✗ {label}: {e}[/red]")
                else:
                    self.reporter.add_success()
                    logger.debug("%s %s succeeded", self.operation, label)

                progress.advance(task)

        return failures
