"""Application configuration helpers for the report intake backend."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from reportes import app_paths


logger = logging.getLogger(__name__)


SETTINGS_PATH_ENV_VAR = "REPORTES_SETTINGS_PATH"

BACKEND_EXCEL = "excel"
BACKEND_SHEETS = "sheets"
BACKENDS = (BACKEND_EXCEL, BACKEND_SHEETS)

SYNC_STATUS_FORCE = "force"
SYNC_STATUS_PRESERVE = "preserve"
SYNC_STATUS_POLICIES = (SYNC_STATUS_FORCE, SYNC_STATUS_PRESERVE)

DEFAULT_WORKBOOK_NAME = "reportes.xlsx"
DEFAULT_SHEET_TITLE = "Reportes"
DEFAULT_SYNC_STATUS = "synced"
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_MAX_BODY_BYTES = 50 * 1024 * 1024
DEFAULT_PORT = 3000

# setting name -> environment variable
ENV_VARS: Dict[str, str] = {
    "backend": "REPORTES_BACKEND",
    "data_dir": app_paths.DATA_DIR_ENV_VAR,
    "workbook_name": "REPORTES_WORKBOOK_NAME",
    "sheet_title": "SHEET_TAB",
    "spreadsheet_id": "SHEET_ID",
    "drive_folder_id": "DRIVE_FOLDER_ID",
    "credentials_json": "GOOGLE_SERVICE_ACCOUNT_JSON",
    "credentials_path": "GOOGLE_APPLICATION_CREDENTIALS",
    "sync_status_default": "REPORTES_SYNC_STATUS_DEFAULT",
    "sync_status_policy": "REPORTES_SYNC_STATUS_POLICY",
    "write_timeout_seconds": "REPORTES_WRITE_TIMEOUT",
    "max_body_bytes": "REPORTES_MAX_BODY_BYTES",
    "diagnostics_enabled": "REPORTES_DIAGNOSTICS",
    "host": "HOST",
    "port": "PORT",
}

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


class SettingsError(RuntimeError):
    """Raised when the configuration cannot support the requested backend."""


@dataclass
class IntakeSettings:
    backend: str = BACKEND_EXCEL
    data_dir: str = str(app_paths.APP_DIR)
    workbook_name: str = DEFAULT_WORKBOOK_NAME
    sheet_title: str = DEFAULT_SHEET_TITLE
    spreadsheet_id: str = ""
    drive_folder_id: str = ""
    credentials_json: str = ""
    credentials_path: str = ""
    sync_status_default: str = DEFAULT_SYNC_STATUS
    sync_status_policy: str = SYNC_STATUS_FORCE
    write_timeout_seconds: Optional[float] = DEFAULT_WRITE_TIMEOUT
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    diagnostics_enabled: bool = True
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    @property
    def workbook_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.workbook_name

    @property
    def force_sync_status(self) -> bool:
        return self.sync_status_policy == SYNC_STATUS_FORCE

    def missing_remote_settings(self) -> List[str]:
        """Return the environment variables the Sheets backend still needs."""

        missing: List[str] = []
        if not self.spreadsheet_id:
            missing.append(ENV_VARS["spreadsheet_id"])
        if not self.drive_folder_id:
            missing.append(ENV_VARS["drive_folder_id"])
        if not self.credentials_json and not self.credentials_path:
            missing.append(ENV_VARS["credentials_json"])
        return missing

    def to_json(self) -> Dict[str, object]:
        """Return the settings without secrets, suitable for logging."""

        return {
            "backend": self.backend,
            "data_dir": self.data_dir,
            "workbook_name": self.workbook_name,
            "sheet_title": self.sheet_title,
            "spreadsheet_id": self.spreadsheet_id,
            "drive_folder_id": self.drive_folder_id,
            "credentials_path": self.credentials_path,
            "sync_status_default": self.sync_status_default,
            "sync_status_policy": self.sync_status_policy,
            "write_timeout_seconds": self.write_timeout_seconds,
            "max_body_bytes": self.max_body_bytes,
            "diagnostics_enabled": self.diagnostics_enabled,
            "host": self.host,
            "port": self.port,
        }


def _read_settings_file(path: str) -> Dict[str, object]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise SettingsError(f"Settings file {path} is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise SettingsError(f"Settings file {path} must contain a JSON object")
    return data


def _read_environment(environ: Mapping[str, str]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for key, env_var in ENV_VARS.items():
        value = environ.get(env_var)
        if value is not None and value.strip() != "":
            values[key] = value
    return values


def _coerce_choice(key: str, value: object, choices, default: str) -> str:
    text = str(value).strip().lower()
    if text in choices:
        return text
    logger.warning("Ignoring invalid %s %r; using %r", key, value, default)
    return default


def _coerce_bool(key: str, value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    logger.warning("Ignoring invalid %s %r; using %r", key, value, default)
    return default


def _coerce_timeout(value: object) -> Optional[float]:
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid write timeout %r", value)
        return DEFAULT_WRITE_TIMEOUT
    if seconds <= 0:
        return None
    return seconds


def _coerce_int(key: str, value: object, default: int, minimum: int, maximum: int) -> int:
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s %r; using %r", key, value, default)
        return default
    return max(minimum, min(maximum, number))


def _coerce_workbook_name(value: object) -> str:
    name = _coerce_text(value, DEFAULT_WORKBOOK_NAME)
    if Path(name).name != name:
        logger.warning("Ignoring workbook_name %r with a directory part; using %r", value, DEFAULT_WORKBOOK_NAME)
        return DEFAULT_WORKBOOK_NAME
    if not name.lower().endswith(".xlsx"):
        logger.warning("workbook_name %r lacks the .xlsx extension; using %r", value, name + ".xlsx")
        name += ".xlsx"
    return name


def _coerce_text(value: object, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def load_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> IntakeSettings:
    """Build :class:`IntakeSettings` from the settings file and environment.

    Environment variables win over the JSON file, which wins over the
    built-in defaults.
    """

    environ = os.environ if environ is None else environ
    path = path or environ.get(SETTINGS_PATH_ENV_VAR) or str(app_paths.APP_DIR / "settings.json")

    data: Dict[str, object] = {}
    data.update(_read_settings_file(path))
    data.update(_read_environment(environ))

    defaults = IntakeSettings()
    settings = IntakeSettings(
        backend=_coerce_choice("backend", data.get("backend", defaults.backend), BACKENDS, BACKEND_EXCEL),
        data_dir=_coerce_text(data.get("data_dir"), defaults.data_dir),
        workbook_name=_coerce_workbook_name(data.get("workbook_name")),
        sheet_title=_coerce_text(data.get("sheet_title"), DEFAULT_SHEET_TITLE),
        spreadsheet_id=_coerce_text(data.get("spreadsheet_id"), ""),
        drive_folder_id=_coerce_text(data.get("drive_folder_id"), ""),
        credentials_json=_coerce_text(data.get("credentials_json"), ""),
        credentials_path=_coerce_text(data.get("credentials_path"), ""),
        sync_status_default=_coerce_text(data.get("sync_status_default"), DEFAULT_SYNC_STATUS),
        sync_status_policy=_coerce_choice(
            "sync_status_policy",
            data.get("sync_status_policy", SYNC_STATUS_FORCE),
            SYNC_STATUS_POLICIES,
            SYNC_STATUS_FORCE,
        ),
        write_timeout_seconds=_coerce_timeout(data.get("write_timeout_seconds", DEFAULT_WRITE_TIMEOUT)),
        max_body_bytes=_coerce_int(
            "max_body_bytes",
            data.get("max_body_bytes", DEFAULT_MAX_BODY_BYTES),
            DEFAULT_MAX_BODY_BYTES,
            1024,
            512 * 1024 * 1024,
        ),
        diagnostics_enabled=_coerce_bool(
            "diagnostics_enabled", data.get("diagnostics_enabled", True), True
        ),
        host=_coerce_text(data.get("host"), defaults.host),
        port=_coerce_int("port", data.get("port", DEFAULT_PORT), DEFAULT_PORT, 1, 65535),
    )
    return settings


__all__ = [
    "BACKEND_EXCEL",
    "BACKEND_SHEETS",
    "DEFAULT_SHEET_TITLE",
    "DEFAULT_SYNC_STATUS",
    "DEFAULT_WORKBOOK_NAME",
    "ENV_VARS",
    "IntakeSettings",
    "SETTINGS_PATH_ENV_VAR",
    "SYNC_STATUS_FORCE",
    "SYNC_STATUS_PRESERVE",
    "SettingsError",
    "load_settings",
]
