"""Tests for CSV/JSON reading and CSV writing."""

import csv
import io
import json

import pytest
from rich.console import Console

from vend_cli.config import FailedRequest
from vend_cli.csv_io import CSVProcessor, collect_fields, flatten_record
from vend_cli.models import Customer


@pytest.fixture
def processor() -> CSVProcessor:
    return CSVProcessor(Console(file=io.StringIO()))


def read_rows(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def test_read_id_csv_takes_first_column_and_skips_blanks(processor, tmp_path):
    path = tmp_path / "ids.csv"
    path.write_text("abc,ignored\n\n def \nghi\n", encoding="utf-8")

    assert processor.read_id_csv(path) == ["abc", "def", "ghi"]


def test_read_id_csv_empty_file(processor, tmp_path):
    path = tmp_path / "ids.csv"
    path.write_text("", encoding="utf-8")

    assert processor.read_id_csv(path) == []


def test_read_id_csv_missing_file(processor, tmp_path):
    with pytest.raises(FileNotFoundError):
        processor.read_id_csv(tmp_path / "missing.csv")


def test_read_json_records_accepts_object_or_list(processor, tmp_path):
    single = tmp_path / "one.json"
    single.write_text(json.dumps({"name": "A"}), encoding="utf-8")
    many = tmp_path / "many.json"
    many.write_text(json.dumps([{"name": "A"}, {"name": "B"}]), encoding="utf-8")

    assert processor.read_json_records(single) == [{"name": "A"}]
    assert len(processor.read_json_records(many)) == 2


def test_read_json_records_rejects_scalars(processor, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        processor.read_json_records(path)


def test_flatten_record_nests_with_dots():
    flat = flatten_record({
        "id": "1",
        "contact": {"email": "a@example.com", "phone": None},
        "tag_ids": ["t1", "t2"],
        "line_items": [{"id": "l1", "quantity": 2}],
    })

    assert flat["id"] == "1"
    assert flat["contact.email"] == "a@example.com"
    assert flat["contact.phone"] is None
    assert flat["tag_ids"] == "t1,t2"
    assert json.loads(flat["line_items"]) == [{"id": "l1", "quantity": 2}]


def test_flatten_record_accepts_models():
    flat = flatten_record(Customer(id="c1", first_name="Ada"))

    assert flat["id"] == "c1"
    assert flat["first_name"] == "Ada"


def test_collect_fields_keeps_first_seen_order():
    assert collect_fields([{"b": 1, "a": 2}, {"c": 3, "a": 4}]) == ["b", "a", "c"]


def test_write_records_csv_uses_given_field_order(processor, tmp_path):
    path = tmp_path / "out" / "export.csv"
    rows = [
        {"id": "1", "name": "A", "active": True, "balance": None},
        {"id": "2", "name": "B", "active": False, "balance": 4.5},
    ]

    count = processor.write_records_csv(rows, path, ["name", "id", "balance", "active"])

    assert count == 2
    assert read_rows(path) == [
        ["name", "id", "balance", "active"],
        ["A", "1", "", "true"],
        ["B", "2", "4.5", "false"],
    ]


def test_write_failures_csv(processor, tmp_path):
    path = tmp_path / "failures.csv"
    failures = [FailedRequest(entity_id="x", operation="delete", reason="URL not found", status_code=404)]

    processor.write_failures_csv(failures, path)

    assert read_rows(path) == [
        ["entity_id", "operation", "status_code", "reason"],
        ["x", "delete", "404", "URL not found"],
    ]


def test_write_failures_csv_skips_empty(processor, tmp_path):
    path = tmp_path / "failures.csv"
    processor.write_failures_csv([], path)
    assert not path.exists()
