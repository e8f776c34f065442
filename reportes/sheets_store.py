"""Google Sheets report store with Drive photo uploads.

All direct Sheets API traffic for the remote backend lives here. The store
keeps the same nine columns as the local workbook plus a ``Foto`` column that
receives the Drive link of an uploaded photo. A batch is written with one
``values.append`` call so a failed request never leaves half a batch behind
in the sheet; photos are uploaded before that call.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import List, MutableSequence, Optional, Sequence, Tuple

from googleapiclient.discovery import build
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from reportes import drive_api
from reportes.google_credentials import CredentialsInvalidError, build_credentials
from reportes.stores import HEADERS, RemoteStoreError, ReportStore, StoreDescription
from reportes.validator import Report
from settings import IntakeSettings, SettingsError

logger = logging.getLogger(__name__)

REMOTE_HEADERS: Tuple[str, ...] = HEADERS + ("Foto",)
SPREADSHEET_URL = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}"


def _normalise_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").strip()
    if not safe:
        raise RemoteStoreError("Worksheet title must be configured (SHEET_TAB).")
    safe = safe.replace("'", "''")
    return f"'{safe}'"


def column_letter(index: int) -> str:
    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters: MutableSequence[str] = []
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def a1_headers_range(title: str, *, columns: int) -> str:
    """Return an A1 range covering the header row for ``title``."""

    return f"{_normalise_title(title)}!A1:{column_letter(max(1, columns))}1"


def a1_full_column_range(title: str, *, columns: int) -> str:
    """Return an A1 range spanning all rows for ``columns`` columns."""

    return f"{_normalise_title(title)}!A:{column_letter(max(1, columns))}"


def _parse_drive_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable Drive modifiedTime %r", value)
        return None


class SheetsReportStore(ReportStore):
    """Append reports to a Google Sheets worksheet."""

    label = "Google Sheets"

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        sheets_service,
        drive_service,
        uploader: Optional[drive_api.DrivePhotoUploader] = None,
        sheet_title: str = "Reportes",
        artifact_name: str = "reportes.xlsx",
        sync_status_default: str = "synced",
        force_sync_status: bool = True,
    ) -> None:
        super().__init__(sync_status_default=sync_status_default, force_sync_status=force_sync_status)
        self._spreadsheet_id = spreadsheet_id
        self._sheets = sheets_service
        self._drive = drive_service
        self._uploader = uploader
        self._sheet_title = sheet_title
        self._artifact_name = artifact_name

    @property
    def artifact_name(self) -> str:
        return self._artifact_name

    @property
    def url(self) -> str:
        return SPREADSHEET_URL.format(spreadsheet_id=self._spreadsheet_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def ensure_exists(self) -> bool:
        created = False
        if self._sheet_title not in self._sheet_titles():
            self._execute(
                self._sheets.spreadsheets().batchUpdate(
                    spreadsheetId=self._spreadsheet_id,
                    body={"requests": [{"addSheet": {"properties": {"title": self._sheet_title}}}]},
                )
            )
            logger.info("Added worksheet %r to spreadsheet %s", self._sheet_title, self._spreadsheet_id)
            created = True

        response = self._execute(
            self._sheets.spreadsheets()
            .values()
            .get(
                spreadsheetId=self._spreadsheet_id,
                range=a1_headers_range(self._sheet_title, columns=len(REMOTE_HEADERS)),
            )
        )
        if not response.get("values"):
            self._write_header()
            created = True
        return created

    def append_rows(self, reports: Sequence[Report]) -> int:
        if not reports:
            return 0

        rows: List[List[str]] = []
        for report in reports:
            photo_url = ""
            if report.photo:
                if self._uploader is None:
                    logger.warning("Dropping photo for report %s: no Drive folder configured", report.id)
                else:
                    photo_url = self._uploader.upload_data_url(report.photo, report.id).direct_url
            rows.append(report.to_row(self.resolve_sync_status(report)) + [photo_url])

        self._execute(
            self._sheets.spreadsheets()
            .values()
            .append(
                spreadsheetId=self._spreadsheet_id,
                range=a1_full_column_range(self._sheet_title, columns=len(REMOTE_HEADERS)),
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": rows, "majorDimension": "ROWS"},
            )
        )
        logger.info("Appended %d report(s) to spreadsheet %s", len(rows), self._spreadsheet_id)
        return len(rows)

    def exists(self) -> bool:
        return self._sheet_title in self._sheet_titles()

    def describe(self) -> StoreDescription:
        if not self.exists():
            return StoreDescription(exists=False, path=self.url)
        metadata = drive_api.get_file_metadata(self._drive, self._spreadsheet_id)
        try:
            size = int(metadata.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return StoreDescription(
            exists=True,
            path=self.url,
            last_modified=_parse_drive_time(metadata.get("modifiedTime")),
            size_bytes=size,
        )

    def reset(self) -> None:
        if not self.exists():
            self.ensure_exists()
            return
        self._execute(
            self._sheets.spreadsheets()
            .values()
            .clear(spreadsheetId=self._spreadsheet_id, range=_normalise_title(self._sheet_title), body={})
        )
        self._write_header()
        logger.warning("Worksheet %r of spreadsheet %s was reset", self._sheet_title, self._spreadsheet_id)

    def export_bytes(self) -> Optional[bytes]:
        if not self.exists():
            return None
        return drive_api.export_spreadsheet(self._drive, self._spreadsheet_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _sheet_titles(self) -> List[str]:
        response = self._execute(
            self._sheets.spreadsheets().get(
                spreadsheetId=self._spreadsheet_id,
                fields="sheets.properties.title",
            )
        )
        return [
            str(sheet.get("properties", {}).get("title", ""))
            for sheet in response.get("sheets", [])
        ]

    def _write_header(self) -> None:
        self._execute(
            self._sheets.spreadsheets()
            .values()
            .update(
                spreadsheetId=self._spreadsheet_id,
                range=a1_headers_range(self._sheet_title, columns=len(REMOTE_HEADERS)),
                valueInputOption="RAW",
                body={"values": [list(REMOTE_HEADERS)]},
            )
        )

    @staticmethod
    def _execute(request) -> dict:
        try:
            return request.execute() or {}
        except HttpError as exc:
            raise RemoteStoreError(f"Google Sheets request failed: {exc}") from exc
        except GoogleAuthError as exc:
            raise RemoteStoreError(f"Google authentication failed: {exc}") from exc


def build_sheets_store(settings: IntakeSettings) -> SheetsReportStore:
    """Create a :class:`SheetsReportStore` from ``settings``."""

    missing = settings.missing_remote_settings()
    if missing:
        raise SettingsError("Missing settings for the Sheets backend: " + ", ".join(missing))

    try:
        credentials = build_credentials(
            json_text=settings.credentials_json or None,
            path=Path(settings.credentials_path) if settings.credentials_path else None,
        )
    except CredentialsInvalidError as exc:
        raise SettingsError(f"Service account credentials are invalid: {exc}") from exc

    sheets_service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
    drive_service = drive_api.build_drive_service(credentials)
    return SheetsReportStore(
        settings.spreadsheet_id,
        sheets_service=sheets_service,
        drive_service=drive_service,
        uploader=drive_api.DrivePhotoUploader(drive_service, settings.drive_folder_id),
        sheet_title=settings.sheet_title,
        artifact_name=settings.workbook_name,
        sync_status_default=settings.sync_status_default,
        force_sync_status=settings.force_sync_status,
    )


__all__ = [
    "REMOTE_HEADERS",
    "SheetsReportStore",
    "a1_full_column_range",
    "a1_headers_range",
    "build_sheets_store",
    "column_letter",
]
