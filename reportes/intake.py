"""Batch intake: validate submitted reports and persist them in one write."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from fastapi.concurrency import run_in_threadpool

from reportes.stores import ReportStore, StoreError
from reportes.validator import Rejection, Report, validate_batch
from reportes.write_queue import WriteSerializer

logger = logging.getLogger(__name__)


class ClientInputError(Exception):
    """Base class for request problems reported back with a 4xx status."""

    status_code = 400

    def extra(self) -> Dict[str, object]:
        return {}


class EmptyBatchError(ClientInputError):
    def __init__(self, message: str = "Request body must be a report object or a non-empty list of reports") -> None:
        super().__init__(message)


class InvalidJSONError(ClientInputError):
    def __init__(self, message: str = "Request body is not valid JSON") -> None:
        super().__init__(message)


class PayloadTooLargeError(ClientInputError):
    status_code = 413

    def __init__(self, limit: int) -> None:
        super().__init__(f"Request body exceeds {limit} bytes")


class NoValidReportsError(ClientInputError):
    def __init__(self, rejected: Sequence[Rejection]) -> None:
        super().__init__("No valid reports in request")
        self.rejected = list(rejected)

    def extra(self) -> Dict[str, object]:
        return {"rejected": [item.to_json() for item in self.rejected]}


@dataclass
class IntakeResult:
    accepted: int
    rejected: List[Rejection] = field(default_factory=list)

    def to_json(self) -> Dict[str, object]:
        return {
            "accepted": self.accepted,
            "rejected": [item.to_json() for item in self.rejected],
        }


def normalise_batch(payload: Any) -> List[Any]:
    """Return ``payload`` as a list of candidate records.

    A single object becomes a one-element list. ``None``, ``{}``, ``[]`` and
    scalars raise :class:`EmptyBatchError`.
    """

    if isinstance(payload, Mapping):
        items = [payload] if payload else []
    elif isinstance(payload, list):
        items = payload
    else:
        items = []
    if not items:
        raise EmptyBatchError()
    return items


class ReportIntakeService:
    """Validate batches and hand accepted reports to the store serializer."""

    def __init__(
        self,
        store: ReportStore,
        serializer: WriteSerializer,
        *,
        sync_status_default: str = "",
    ) -> None:
        self._store = store
        self._serializer = serializer
        self._sync_status_default = sync_status_default

    @property
    def store(self) -> ReportStore:
        return self._store

    async def submit(self, payload: Any) -> IntakeResult:
        items = normalise_batch(payload)
        validation = validate_batch(items, sync_status_default=self._sync_status_default)
        if not validation.accepted:
            raise NoValidReportsError(validation.rejected)

        accepted = validation.accepted
        written = await self._serializer.enqueue(lambda: run_in_threadpool(self._persist, accepted))
        if validation.rejected:
            logger.info(
                "Stored %d report(s), rejected %d of %d", written, len(validation.rejected), len(items)
            )
        return IntakeResult(accepted=written, rejected=validation.rejected)

    async def create_artifact(self) -> bool:
        return await self._serializer.enqueue(lambda: run_in_threadpool(self._guarded, self._store.ensure_exists))

    async def reset_artifact(self) -> None:
        await self._serializer.enqueue(lambda: run_in_threadpool(self._guarded, self._store.reset))

    def _persist(self, reports: List[Report]) -> int:
        def _write() -> int:
            self._store.ensure_exists()
            return self._store.append_rows(reports)

        return self._guarded(_write)

    @staticmethod
    def _guarded(operation):
        try:
            return operation()
        except StoreError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure while writing to the report store")
            raise StoreError(str(exc)) from exc


__all__ = [
    "ClientInputError",
    "EmptyBatchError",
    "IntakeResult",
    "InvalidJSONError",
    "NoValidReportsError",
    "PayloadTooLargeError",
    "ReportIntakeService",
    "normalise_batch",
]
