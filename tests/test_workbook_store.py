from __future__ import annotations

import sys
from pathlib import Path

import pytest
from openpyxl import load_workbook

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from reportes.stores import HEADERS, WorkbookStoreError
from reportes.validator import Report
from reportes.workbook_store import WorkbookStore


def _report(report_id: str = "R-1", **overrides) -> Report:
    values = dict(
        id=report_id,
        timestamp="2024-05-01T08:00:00Z",
        shift="A",
        report_type="Falla",
        equipment="Bomba 3",
        description="Fuga",
        operator="Ana",
        area="Planta",
        sync_status="pending",
    )
    values.update(overrides)
    return Report(**values)


def test_ensure_exists_creates_header_only_workbook(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "reportes.xlsx")

    assert store.ensure_exists() is True
    assert store.ensure_exists() is False
    assert store.read_rows() == [list(HEADERS)]

    workbook = load_workbook(tmp_path / "reportes.xlsx")
    assert workbook.sheetnames == ["Reportes"]


def test_append_rows_writes_after_existing_rows(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "reportes.xlsx", sync_status_default="synced")
    store.ensure_exists()

    assert store.append_rows([_report("1")]) == 1
    assert store.append_rows([_report("2"), _report("3")]) == 2

    rows = store.read_rows()
    assert rows[0] == list(HEADERS)
    assert [row[0] for row in rows[1:]] == ["1", "2", "3"]
    assert rows[1] == ["1", "2024-05-01T08:00:00Z", "A", "Falla", "Bomba 3", "Fuga", "Ana", "Planta", "synced"]


def test_append_creates_missing_workbook(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "nested" / "reportes.xlsx")

    store.append_rows([_report()])

    assert store.read_rows()[0] == list(HEADERS)
    assert len(store.read_rows()) == 2


def test_preserve_policy_keeps_client_sync_status(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "reportes.xlsx", sync_status_default="synced", force_sync_status=False)

    store.append_rows([_report("1", sync_status="pending"), _report("2", sync_status="")])

    assert [row[8] for row in store.read_rows()[1:]] == ["pending", "synced"]


def test_formula_like_text_is_stored_literally(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "reportes.xlsx")

    store.append_rows([_report(description="=SUM(A1:A2)")])

    assert store.read_rows()[1][5] == "=SUM(A1:A2)"


def test_save_leaves_no_temporary_files(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "reportes.xlsx")

    store.append_rows([_report()])

    assert sorted(path.name for path in tmp_path.iterdir()) == ["reportes.xlsx"]


def test_corrupt_workbook_raises_store_error(tmp_path: Path) -> None:
    path = tmp_path / "reportes.xlsx"
    path.write_bytes(b"not a zip file")
    store = WorkbookStore(path)

    with pytest.raises(WorkbookStoreError):
        store.append_rows([_report()])

    assert path.read_bytes() == b"not a zip file"


def test_describe_and_reset(tmp_path: Path) -> None:
    store = WorkbookStore(tmp_path / "reportes.xlsx")

    assert store.describe().to_json() == {
        "exists": False,
        "path": str(tmp_path / "reportes.xlsx"),
        "lastModified": None,
        "sizeBytes": 0,
    }
    assert store.export_bytes() is None

    store.append_rows([_report()])
    description = store.describe()
    assert description.exists is True
    assert description.size_bytes > 0
    assert description.to_json()["lastModified"].endswith("Z")

    store.reset()
    assert store.read_rows() == [list(HEADERS)]
    assert store.export_bytes()[:2] == b"PK"
