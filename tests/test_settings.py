from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import settings as settings_module
from settings import IntakeSettings, SettingsError, load_settings


def test_defaults_without_file_or_environment(tmp_path: Path) -> None:
    loaded = load_settings(str(tmp_path / "missing.json"), environ={})

    assert loaded.backend == "excel"
    assert loaded.workbook_name == "reportes.xlsx"
    assert loaded.sync_status_default == "synced"
    assert loaded.force_sync_status is True
    assert loaded.write_timeout_seconds == 30.0
    assert loaded.port == 3000


def test_environment_overrides_settings_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"backend": "sheets", "port": 8080, "sheet_title": "Archivo"}), encoding="utf-8")

    loaded = load_settings(
        str(path),
        environ={"PORT": "9090", "REPORTES_DATA_DIR": str(tmp_path), "REPORTES_SYNC_STATUS_POLICY": "preserve"},
    )

    assert loaded.backend == "sheets"
    assert loaded.sheet_title == "Archivo"
    assert loaded.port == 9090
    assert loaded.workbook_path == tmp_path / "reportes.xlsx"
    assert loaded.force_sync_status is False


def test_settings_path_can_come_from_environment(tmp_path: Path) -> None:
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"workbook_name": "turnos.xlsx"}), encoding="utf-8")

    loaded = load_settings(environ={settings_module.SETTINGS_PATH_ENV_VAR: str(path)})

    assert loaded.workbook_name == "turnos.xlsx"


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    loaded = load_settings(
        str(tmp_path / "missing.json"),
        environ={
            "REPORTES_BACKEND": "mongo",
            "PORT": "not-a-port",
            "REPORTES_DIAGNOSTICS": "maybe",
            "REPORTES_WRITE_TIMEOUT": "0",
            "REPORTES_MAX_BODY_BYTES": "10",
        },
    )

    assert loaded.backend == "excel"
    assert loaded.port == 3000
    assert loaded.diagnostics_enabled is True
    assert loaded.write_timeout_seconds is None
    assert loaded.max_body_bytes == 1024


def test_diagnostics_can_be_disabled(tmp_path: Path) -> None:
    loaded = load_settings(str(tmp_path / "missing.json"), environ={"REPORTES_DIAGNOSTICS": "off"})

    assert loaded.diagnostics_enabled is False


@pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
def test_unreadable_settings_file_raises(tmp_path: Path, content: str) -> None:
    path = tmp_path / "settings.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(SettingsError):
        load_settings(str(path), environ={})


def test_missing_remote_settings_and_secret_free_json() -> None:
    configured = IntakeSettings(backend="sheets", credentials_json='{"private_key": "secret"}')

    assert configured.missing_remote_settings() == ["SHEET_ID", "DRIVE_FOLDER_ID"]
    assert "credentials_json" not in configured.to_json()
    assert "secret" not in json.dumps(configured.to_json())


@pytest.mark.parametrize(
    "value, expected",
    [
        ("reportes", "reportes.xlsx"),
        ("turnos.XLSX", "turnos.XLSX"),
        ("datos.csv", "datos.csv.xlsx"),
        ("../fuera.xlsx", "reportes.xlsx"),
    ],
)
def test_workbook_name_always_has_xlsx_extension(tmp_path: Path, value: str, expected: str) -> None:
    loaded = load_settings(str(tmp_path / "missing.json"), environ={"REPORTES_WORKBOOK_NAME": value})

    assert loaded.workbook_name == expected
