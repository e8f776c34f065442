"""Shared contract for the tabular sinks that persist reports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from reportes.validator import Report

HEADERS: Tuple[str, ...] = (
    "ID",
    "Fecha",
    "Turno",
    "Tipo",
    "Equipo",
    "Descripción",
    "Operador",
    "Área",
    "SyncStatus",
)

XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class StoreError(RuntimeError):
    """Base error raised when a store cannot complete an operation."""

    #: message safe to return to API clients
    public_message = "The report store could not complete the operation."


class WorkbookStoreError(StoreError):
    """Raised for local workbook I/O failures. Details stay in the logs."""


class RemoteStoreError(StoreError):
    """Raised when Google Sheets or Drive reject a request."""

    @property
    def public_message(self) -> str:  # type: ignore[override]
        return str(self) or StoreError.public_message


@dataclass(frozen=True)
class StoreDescription:
    exists: bool
    path: str
    last_modified: Optional[datetime] = None
    size_bytes: int = 0

    def to_json(self) -> Dict[str, object]:
        return {
            "exists": self.exists,
            "path": self.path,
            "lastModified": _isoformat(self.last_modified),
            "sizeBytes": self.size_bytes,
        }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ReportStore(ABC):
    """Single-writer sink for validated reports.

    Implementations are synchronous; callers run mutations through
    :class:`reportes.write_queue.WriteSerializer` and off the event loop.
    """

    #: human readable backend name used in banners and logs
    label = "store"

    def __init__(self, *, sync_status_default: str, force_sync_status: bool = True) -> None:
        self.sync_status_default = sync_status_default
        self.force_sync_status = force_sync_status

    def resolve_sync_status(self, report: Report) -> str:
        if self.force_sync_status or not report.sync_status:
            return self.sync_status_default
        return report.sync_status

    @property
    @abstractmethod
    def artifact_name(self) -> str:
        """Name under which the artifact is offered for download."""

    @property
    def local_path(self) -> Optional[Path]:
        """Filesystem path of the artifact, when it lives on local disk."""
        return None

    @abstractmethod
    def ensure_exists(self) -> bool:
        """Create the artifact with its header row; return ``True`` if created."""

    @abstractmethod
    def append_rows(self, reports: Sequence[Report]) -> int:
        """Append ``reports`` in order and return the number of rows written."""

    @abstractmethod
    def describe(self) -> StoreDescription:
        """Return the current state of the artifact without locking."""

    @abstractmethod
    def exists(self) -> bool:
        """Return whether the artifact is present, without locking."""

    @abstractmethod
    def reset(self) -> None:
        """Discard every stored row and recreate an empty artifact."""

    def export_bytes(self) -> Optional[bytes]:
        """Return the artifact as ``.xlsx`` bytes, or ``None`` when absent."""
        path = self.local_path
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise WorkbookStoreError(f"Could not read {path}: {exc}") from exc


__all__ = [
    "HEADERS",
    "RemoteStoreError",
    "ReportStore",
    "StoreDescription",
    "StoreError",
    "WorkbookStoreError",
    "XLSX_MIME_TYPE",
]
