"""CSV and JSON input/output for exports and bulk mutations."""

import csv
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel
from rich.console import Console

from .config import FailedRequest


FAILURE_FIELDS = ["entity_id", "operation", "status_code", "reason"]


def flatten_record(record: Any, prefix: str = "") -> Dict[str, Any]:
    """Flatten nested JSON into dotted column names.

    Lists of scalars are joined with commas, lists of objects are kept
    as JSON text so a row stays a row.
    """
    if isinstance(record, BaseModel):
        record = record.model_dump(by_alias=True)

    flat: Dict[str, Any] = {}
    for key, value in record.items():
        column = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_record(value, f"{column}."))
        elif isinstance(value, list):
            if all(not isinstance(item, (dict, list)) for item in value):
                flat[column] = ",".join("" if item is None else str(item) for item in value)
            else:
                flat[column] = json.dumps(value, sort_keys=True)
        else:
            flat[column] = value
    return flat


def collect_fields(rows: Iterable[Dict[str, Any]]) -> List[str]:
    """Column names in first-seen order across all rows."""
    fields: Dict[str, None] = {}
    for row in rows:
        for key in row:
            fields.setdefault(key, None)
    return list(fields)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class CSVProcessor:
    """Handles CSV/JSON reading and CSV writing."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def read_id_csv(self, file_path: Path) -> List[str]:
        """Read a CSV of entity ids without a header row (first column)."""
        if not file_path.exists():
            raise FileNotFoundError(
                f"CSV file not found: {file_path} - check you've specified the right file path"
            )

        try:
            df = pd.read_csv(file_path, header=None, dtype=str, usecols=[0],
                             skip_blank_lines=True, encoding="utf-8")
        except pd.errors.EmptyDataError:
            return []
        except (ValueError, pd.errors.ParserError) as e:
            raise ValueError(f"Failed to read CSV file: {e}") from e

        ids = []
        for value in df[0].tolist():
            if pd.isna(value):
                continue
            cleaned = str(value).strip()
            if cleaned:
                ids.append(cleaned)

        self.console.print(f"[green]Loaded {len(ids)} ids from {file_path}[/green]")
        return ids

    def read_json_records(self, file_path: Path) -> List[Dict[str, Any]]:
        """Read request bodies from a JSON file holding an object or a list of objects."""
        if not file_path.exists():
            raise FileNotFoundError(f"JSON file not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            try:
                payload = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Failed to read JSON file {file_path}: {e}") from e

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise ValueError(f"{file_path} must contain a JSON object or a list of objects")

        self.console.print(f"[green]Loaded {len(payload)} records from {file_path}[/green]")
        return payload

    def write_records_csv(
        self,
        rows: Sequence[Dict[str, Any]],
        output_path: Path,
        fields: Optional[Sequence[str]] = None,
    ) -> int:
        """Write rows to CSV with the columns in the order given.

        Without ``fields`` the columns are taken from the rows themselves.
        """
        fieldnames = list(fields) if fields is not None else collect_fields(rows)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(fieldnames)
            for row in rows:
                writer.writerow([_cell(row.get(field)) for field in fieldnames])

        self.console.print(f"[green]Wrote {len(rows)} rows to {output_path}[/green]")
        return len(rows)

    def write_failures_csv(self, failures: List[FailedRequest], output_path: Path) -> None:
        """Write failures to CSV file."""
        if not failures:
            return

        rows = [failure.model_dump() for failure in failures]
        self.write_records_csv(rows, output_path, FAILURE_FIELDS)
        self.console.print(f"[yellow]Wrote {len(failures)} failures to {output_path}[/yellow]")
