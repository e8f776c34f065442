"""Google Drive helpers for report photos and spreadsheet export."""
from __future__ import annotations

import base64
import binascii
import io
import logging
import mimetypes
import time
from dataclasses import dataclass
from typing import Optional

from googleapiclient.discovery import build
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from reportes.stores import RemoteStoreError, XLSX_MIME_TYPE
from reportes.validator import split_data_url

logger = logging.getLogger(__name__)

DIRECT_VIEW_URL = "https://drive.google.com/uc?export=view&id={file_id}"


@dataclass(frozen=True)
class UploadedPhoto:
    file_id: str
    direct_url: str


def build_drive_service(credentials):
    """Construct a Drive v3 client for ``credentials``."""

    return build("drive", "v3", credentials=credentials, cache_discovery=False)


def photo_file_name(report_id: str, mime_type: str) -> str:
    """Return the Drive file name used for a report photo."""

    extension = mimetypes.guess_extension(mime_type) or ".png"
    if extension == ".jpe":
        extension = ".jpg"
    stem = report_id or str(int(time.time() * 1000))
    return f"reporte_{stem}{extension}"


class DrivePhotoUploader:
    """Upload data-URL photos into a Drive folder and share them publicly."""

    def __init__(self, service, folder_id: str) -> None:
        self._service = service
        self._folder_id = folder_id

    def upload_data_url(self, data_url: str, report_id: str) -> UploadedPhoto:
        try:
            mime_type, payload = split_data_url(data_url)
            content = base64.b64decode(payload, validate=False)
        except (ValueError, binascii.Error) as exc:
            raise RemoteStoreError(f"Photo for report {report_id} is not a valid base64 data URL") from exc

        media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
        metadata = {"name": photo_file_name(report_id, mime_type), "parents": [self._folder_id]}
        try:
            created = (
                self._service.files()
                .create(body=metadata, media_body=media, fields="id, webViewLink")
                .execute()
            )
            file_id = created["id"]
            # readable by anyone holding the link so the sheet and the app can show it
            (
                self._service.permissions()
                .create(fileId=file_id, body={"role": "reader", "type": "anyone"})
                .execute()
            )
        except HttpError as exc:
            raise RemoteStoreError(f"Drive upload failed for report {report_id}: {exc}") from exc
        except GoogleAuthError as exc:
            raise RemoteStoreError(f"Google authentication failed: {exc}") from exc

        logger.info("Uploaded photo for report %s as Drive file %s", report_id, file_id)
        return UploadedPhoto(file_id=file_id, direct_url=DIRECT_VIEW_URL.format(file_id=file_id))


def get_file_metadata(service, file_id: str) -> dict:
    """Return ``modifiedTime`` and ``size`` for ``file_id``."""

    try:
        return service.files().get(fileId=file_id, fields="id, modifiedTime, size").execute()
    except HttpError as exc:
        raise RemoteStoreError(f"Drive metadata lookup failed: {exc}") from exc
    except GoogleAuthError as exc:
        raise RemoteStoreError(f"Google authentication failed: {exc}") from exc


def export_spreadsheet(service, file_id: str, mime_type: str = XLSX_MIME_TYPE) -> Optional[bytes]:
    """Download a native Google Sheet converted to ``mime_type``."""

    request = service.files().export_media(fileId=file_id, mimeType=mime_type)
    buffer = io.BytesIO()
    downloader = MediaIoBaseDownload(buffer, request)
    done = False
    try:
        while not done:
            _, done = downloader.next_chunk()
    except HttpError as exc:
        if getattr(exc.resp, "status", None) == 404:
            return None
        raise RemoteStoreError(f"Drive export failed: {exc}") from exc
    except GoogleAuthError as exc:
        raise RemoteStoreError(f"Google authentication failed: {exc}") from exc
    return buffer.getvalue()


__all__ = [
    "DIRECT_VIEW_URL",
    "DrivePhotoUploader",
    "UploadedPhoto",
    "build_drive_service",
    "export_spreadsheet",
    "get_file_metadata",
    "photo_file_name",
]
