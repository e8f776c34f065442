"""Helpers for validating Google service account credentials.

The hosted deployment keeps the whole service account JSON in a single
environment variable, while local setups usually point at a key file. Both
paths end up in :func:`build_credentials`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Sequence

from google.oauth2 import service_account

__all__ = [
    "CredentialsInvalidError",
    "REQUIRED_FIELDS",
    "SCOPES",
    "build_credentials",
    "load_service_account_data",
    "parse_service_account_json",
]

SCOPES: Sequence[str] = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
)


class CredentialsInvalidError(Exception):
    """Raised when service account data is missing or malformed."""


REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "token_uri",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _parse_json(text: str, source: str) -> Mapping[str, object]:
    payload_text = text.lstrip("\ufeff").strip()
    if not payload_text:
        raise CredentialsInvalidError(f"Service account JSON from {source} is empty.")

    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsInvalidError(f"Service account JSON from {source} could not be parsed: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise CredentialsInvalidError(f"Service account JSON from {source} must be an object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    missing: list[str] = []

    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing.append(field)

    if data.get("type") != "service_account":
        missing.append("type")

    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsInvalidError(f"JSON missing fields: {ordered}")

    private_key = str(data["private_key"])
    data["private_key"] = _normalise_private_key(private_key)
    return data


def parse_service_account_json(text: str) -> Dict[str, object]:
    """Return validated service account data from raw JSON text."""

    return _validate_payload(_parse_json(text, "environment"))


def load_service_account_data(path: Path) -> Dict[str, object]:
    """Return validated service account data read from ``path``."""

    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsInvalidError(f"JSON file could not be read: {exc}") from exc
    return _validate_payload(_parse_json(raw, str(path)))


def build_credentials(
    *,
    json_text: Optional[str] = None,
    path: Optional[Path] = None,
    scopes: Sequence[str] = SCOPES,
):
    """Build service account credentials from ``json_text`` or ``path``.

    ``json_text`` takes precedence when both are supplied.
    """

    if json_text:
        payload = parse_service_account_json(json_text)
    elif path is not None:
        payload = load_service_account_data(path)
    else:
        raise CredentialsInvalidError("No service account credentials configured.")

    try:
        return service_account.Credentials.from_service_account_info(payload, scopes=list(scopes))
    except ValueError as exc:
        raise CredentialsInvalidError(str(exc)) from exc
