"""Normalisation and acceptance rules for incoming report records.

Clients post loosely typed JSON objects. :func:`validate_report` turns one of
them into an immutable :class:`Report` whose fields are all strings, or raises
:class:`InvalidReportError` explaining why the record cannot be stored.
:func:`validate_batch` applies that to a whole submission without raising,
keeping the accepted reports in their original order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# canonical field -> accepted input keys, first key is the one clients use
FIELD_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "id": ("id",),
    "timestamp": ("fecha", "timestamp", "fechaHora"),
    "shift": ("turno", "shift"),
    "report_type": ("tipo", "reportType"),
    "equipment": ("equipo", "equipment"),
    "description": ("descripcion", "descripción", "description"),
    "operator": ("operador", "operario", "operator"),
    "area": ("area", "área"),
    "sync_status": ("syncStatus",),
    "photo": ("foto", "photo", "photoReference"),
}

REQUIRED_FIELDS: Tuple[str, ...] = (
    "id",
    "timestamp",
    "shift",
    "report_type",
    "equipment",
    "description",
)

DATA_URL_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<payload>.+)$", re.DOTALL)


class InvalidReportError(ValueError):
    """Raised when a record cannot become a :class:`Report`."""

    def __init__(self, message: str, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = list(missing)


@dataclass(frozen=True)
class Report:
    id: str
    timestamp: str
    shift: str
    report_type: str
    equipment: str
    description: str
    operator: str = ""
    area: str = ""
    sync_status: str = ""
    photo: Optional[str] = None

    def to_row(self, sync_status: Optional[str] = None) -> List[str]:
        """Return the values for the nine fixed artifact columns."""

        return [
            self.id,
            self.timestamp,
            self.shift,
            self.report_type,
            self.equipment,
            self.description,
            self.operator,
            self.area,
            self.sync_status if sync_status is None else sync_status,
        ]


@dataclass(frozen=True)
class Rejection:
    index: int
    error: str

    def to_json(self) -> Mapping[str, object]:
        return {"index": self.index, "error": self.error}


@dataclass
class BatchValidation:
    accepted: List[Report] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)


def coerce_text(value: Any) -> str:
    """Return the string form of ``value`` with ``None`` mapped to ``""``.

    Text is kept as sent, surrounding whitespace included.
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _lookup(raw: Mapping[str, Any], name: str) -> Any:
    for key in FIELD_ALIASES[name]:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _photo_reference(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if not DATA_URL_RE.match(text):
        logger.debug("Ignoring photo that is not a base64 image data URL")
        return None
    return text


def split_data_url(data_url: str) -> Tuple[str, str]:
    """Return ``(mime_type, base64_payload)`` for an image data URL."""

    match = DATA_URL_RE.match(data_url.strip())
    if not match:
        raise ValueError("photo is not a base64 image data URL")
    return match.group("mime"), match.group("payload")


def validate_report(raw: Any, *, sync_status_default: str = "") -> Report:
    """Normalise ``raw`` into a :class:`Report`.

    Every field is coerced to a string; a missing ``syncStatus`` takes
    ``sync_status_default``. Raises :class:`InvalidReportError` for anything
    that is not an object or lacks one of :data:`REQUIRED_FIELDS`.
    """

    if not isinstance(raw, Mapping):
        raise InvalidReportError(f"expected an object, got {type(raw).__name__}")

    values = {
        name: coerce_text(_lookup(raw, name))
        for name in FIELD_ALIASES
        if name != "photo"
    }
    missing = [FIELD_ALIASES[name][0] for name in REQUIRED_FIELDS if not values[name]]
    if missing:
        raise InvalidReportError(
            "missing required fields: " + ", ".join(missing),
            missing=missing,
        )

    return Report(
        id=values["id"],
        timestamp=values["timestamp"],
        shift=values["shift"],
        report_type=values["report_type"],
        equipment=values["equipment"],
        description=values["description"],
        operator=values["operator"],
        area=values["area"],
        sync_status=values["sync_status"] or sync_status_default,
        photo=_photo_reference(_lookup(raw, "photo")),
    )


def validate_batch(items: Sequence[Any], *, sync_status_default: str = "") -> BatchValidation:
    """Validate every item, keeping accepted reports in input order."""

    result = BatchValidation()
    for index, item in enumerate(items):
        try:
            report = validate_report(item, sync_status_default=sync_status_default)
        except InvalidReportError as exc:
            logger.debug("Rejected report at index %d: %s", index, exc)
            result.rejected.append(Rejection(index=index, error=str(exc)))
            continue
        result.accepted.append(report)
    return result


__all__ = [
    "BatchValidation",
    "DATA_URL_RE",
    "FIELD_ALIASES",
    "InvalidReportError",
    "REQUIRED_FIELDS",
    "Rejection",
    "Report",
    "coerce_text",
    "split_data_url",
    "validate_batch",
    "validate_report",
]
