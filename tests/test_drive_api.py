from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from httplib2 import Response

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from reportes import drive_api
from reportes.stores import RemoteStoreError


class _FakeRequest:
    def __init__(self, callback):
        self._callback = callback

    def execute(self):
        return self._callback()


class _FakeFiles:
    def __init__(self, service: "_FakeDriveService") -> None:
        self._service = service

    def create(self, body: Dict[str, Any], media_body, fields: str):
        def _create():
            if self._service.fail:
                raise HttpError(Response({"status": 403}), b"forbidden")
            if self._service.revoked:
                raise RefreshError("invalid_grant: Token has been expired or revoked.")
            self._service.created.append((body, media_body.mimetype()))
            return {"id": "drive-file-1", "webViewLink": "https://drive.google.com/file/d/drive-file-1/view"}

        return _FakeRequest(_create)

    def get(self, fileId: str, fields: str):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: {"id": fileId, "modifiedTime": "2024-05-01T08:00:00.000Z", "size": "2048"})


class _FakePermissions:
    def __init__(self, service: "_FakeDriveService") -> None:
        self._service = service

    def create(self, fileId: str, body: Dict[str, Any]):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: self._service.permissions_granted.append((fileId, body)))


class _FakeDriveService:
    def __init__(self) -> None:
        self.created: List[tuple] = []
        self.permissions_granted: List[tuple] = []
        self.fail = False
        self.revoked = False

    def files(self) -> _FakeFiles:
        return _FakeFiles(self)

    def permissions(self) -> _FakePermissions:
        return _FakePermissions(self)


@pytest.mark.parametrize(
    "mime_type, expected",
    [("image/png", "reporte_R-1.png"), ("image/jpeg", "reporte_R-1.jpg"), ("image/x-unknown", "reporte_R-1.png")],
)
def test_photo_file_name_uses_report_id(mime_type: str, expected: str) -> None:
    assert drive_api.photo_file_name("R-1", mime_type) == expected


def test_upload_data_url_creates_public_file_in_folder() -> None:
    service = _FakeDriveService()
    uploader = drive_api.DrivePhotoUploader(service, "folder-9")

    uploaded = uploader.upload_data_url("data:image/png;base64,iVBORw0KGgo=", "R-1")

    assert uploaded.file_id == "drive-file-1"
    assert uploaded.direct_url == "https://drive.google.com/uc?export=view&id=drive-file-1"
    body, mime_type = service.created[0]
    assert body == {"name": "reporte_R-1.png", "parents": ["folder-9"]}
    assert mime_type == "image/png"
    assert service.permissions_granted == [("drive-file-1", {"role": "reader", "type": "anyone"})]


def test_upload_errors_become_remote_store_errors() -> None:
    service = _FakeDriveService()
    service.fail = True
    uploader = drive_api.DrivePhotoUploader(service, "folder-9")

    with pytest.raises(RemoteStoreError, match="R-1"):
        uploader.upload_data_url("data:image/png;base64,iVBORw0KGgo=", "R-1")

    with pytest.raises(RemoteStoreError):
        uploader.upload_data_url("not a data url", "R-2")


def test_get_file_metadata_passes_through() -> None:
    metadata = drive_api.get_file_metadata(_FakeDriveService(), "sheet-123")

    assert metadata["size"] == "2048"


def test_upload_auth_errors_keep_their_message() -> None:
    service = _FakeDriveService()
    service.revoked = True
    uploader = drive_api.DrivePhotoUploader(service, "folder-9")

    with pytest.raises(RemoteStoreError, match="invalid_grant"):
        uploader.upload_data_url("data:image/png;base64,iVBORw0KGgo=", "R-1")
