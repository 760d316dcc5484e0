"""Detect embedded minisign signatures in a mod file's metadata blob."""

from __future__ import annotations

import json
from typing import Any

SIGNATURE_FIELD = "minisigs"


def _signature_entries(metadata_blob: str | None) -> list[Any]:
    if not metadata_blob:
        return []
    try:
        metadata = json.loads(metadata_blob)
    except (ValueError, TypeError, RecursionError):
        return []
    if not isinstance(metadata, dict):
        return []
    entries = metadata.get(SIGNATURE_FIELD)
    if not isinstance(entries, list):
        return []
    return entries


def is_signed(metadata_blob: str | None) -> bool:
    """Return True when the blob parses and carries at least one signature entry."""
    return len(_signature_entries(metadata_blob)) > 0


def extract_signatures(metadata_blob: str | None) -> list[str]:
    """Return the textual signature entries of the blob, in order."""
    return [entry for entry in _signature_entries(metadata_blob) if isinstance(entry, str)]
