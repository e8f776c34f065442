"""Read-only health and status views over the report store."""
from __future__ import annotations

from typing import Dict

from reportes.stores import ReportStore


class StatusReporter:
    def __init__(self, store: ReportStore) -> None:
        self._store = store

    def health(self) -> Dict[str, object]:
        return {"ok": True, "exists": self._store.exists()}

    def status(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"ok": True}
        payload.update(self._store.describe().to_json())
        return payload


__all__ = ["StatusReporter"]
