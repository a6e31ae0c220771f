"""File type detection for seed uploads.

Detection is extension based: the declared file name decides which reader
the seed file parser uses.  Anything unrecognised is read as plain text.
"""

from __future__ import annotations

from pathlib import Path

from backend.domain import DetectedType

EXTENSION_TYPES: dict[str, DetectedType] = {
    ".csv": "csv",
    ".json": "json",
    ".jsonl": "json",
    ".xlsx": "xlsx",
    ".xls": "xlsx",
    ".xlsm": "xlsx",
    ".pdf": "pdf",
}


def detect(filename: str) -> DetectedType:
    return EXTENSION_TYPES.get(Path(filename or "").suffix.lower(), "text")
