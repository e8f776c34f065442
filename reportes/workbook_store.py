"""Local ``.xlsx`` report store.

The workbook holds a single ``Reportes`` sheet. Every mutation loads the
whole file, changes it in memory and publishes the result by writing a
temporary file next to the target and renaming it over the original, so
readers only ever see a complete workbook.
"""

from __future__ import annotations

import logging
import os
import uuid
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException

from reportes.stores import HEADERS, ReportStore, StoreDescription, WorkbookStoreError
from reportes.validator import Report

logger = logging.getLogger(__name__)

DEFAULT_SHEET_TITLE = "Reportes"


def _write_header(sheet) -> None:
    for column_index, header in enumerate(HEADERS, start=1):
        sheet.cell(row=1, column=column_index, value=header)


class WorkbookStore(ReportStore):
    """Append-only report sink backed by an ``.xlsx`` file on disk."""

    label = "Excel"

    def __init__(
        self,
        path: Path,
        *,
        sheet_title: str = DEFAULT_SHEET_TITLE,
        sync_status_default: str = "synced",
        force_sync_status: bool = True,
    ) -> None:
        super().__init__(sync_status_default=sync_status_default, force_sync_status=force_sync_status)
        self._path = Path(path)
        self._sheet_title = sheet_title

    @property
    def path(self) -> Path:
        return self._path

    @property
    def local_path(self) -> Path:
        return self._path

    @property
    def artifact_name(self) -> str:
        return self._path.name

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def ensure_exists(self) -> bool:
        if self._path.exists():
            return False
        self._save(self._new_workbook())
        logger.info("Created workbook %s", self._path)
        return True

    def append_rows(self, reports: Sequence[Report]) -> int:
        if not reports:
            return 0
        workbook = self._load()
        sheet = self._sheet(workbook)
        for report in reports:
            self._write_row(sheet, report.to_row(self.resolve_sync_status(report)))
        self._save(workbook)
        logger.info("Appended %d report(s) to %s", len(reports), self._path)
        return len(reports)

    def read_rows(self) -> List[List[str]]:
        """Return every row of the report sheet, header included."""

        workbook = self._load()
        sheet = self._sheet(workbook)
        rows: List[List[str]] = []
        for values in sheet.iter_rows(min_row=1, max_col=len(HEADERS), values_only=True):
            rows.append(["" if value is None else str(value) for value in values])
        return rows

    def exists(self) -> bool:
        return self._path.exists()

    def describe(self) -> StoreDescription:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return StoreDescription(exists=False, path=str(self._path))
        return StoreDescription(
            exists=True,
            path=str(self._path),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size_bytes=stat.st_size,
        )

    def reset(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise WorkbookStoreError(f"Could not delete {self._path}: {exc}") from exc
        self._save(self._new_workbook())
        logger.warning("Workbook %s was reset", self._path)

    # ------------------------------------------------------------------
    # Workbook helpers
    # ------------------------------------------------------------------
    def _new_workbook(self) -> Workbook:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = self._sheet_title
        _write_header(sheet)
        return workbook

    def _load(self) -> Workbook:
        if not self._path.exists():
            return self._new_workbook()
        try:
            return load_workbook(self._path)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            raise WorkbookStoreError(f"Could not read workbook {self._path}: {exc}") from exc

    def _sheet(self, workbook: Workbook):
        if self._sheet_title in workbook.sheetnames:
            sheet = workbook[self._sheet_title]
        else:
            sheet = workbook.create_sheet(self._sheet_title)
        if sheet.cell(row=1, column=1).value is None:
            _write_header(sheet)
        return sheet

    @staticmethod
    def _write_row(sheet, values: Sequence[str]) -> None:
        row_index = sheet.max_row + 1
        for column_index, value in enumerate(values, start=1):
            if isinstance(value, str):
                value = ILLEGAL_CHARACTERS_RE.sub("", value)
            cell = sheet.cell(row=row_index, column=column_index, value=value)
            # keep text such as "=SUM(...)" as a literal string
            if cell.data_type == "f":
                cell.data_type = "s"

    def _save(self, workbook: Workbook) -> None:
        directory = self._path.parent
        tmp_path = directory / f".{self._path.stem}-{uuid.uuid4().hex}.tmp{self._path.suffix}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            workbook.save(tmp_path)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise WorkbookStoreError(f"Could not write workbook {self._path}: {exc}") from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_path)


__all__ = ["DEFAULT_SHEET_TITLE", "WorkbookStore"]
