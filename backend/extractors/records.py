"""Normalisation of raw rows into seed records for each data type."""

from __future__ import annotations

import math
import re
from typing import Any, Mapping

from backend.core.errors import PartialParseFailure
from backend.domain import DataType

TITLE_ALIASES: dict[str, tuple[str, ...]] = {
    "documents": ("title", "name", "subject", "제목"),
    "faq": ("question", "q", "title", "질문"),
    "manual": ("title", "heading", "section", "chapter", "제목"),
    "scenarios": ("name", "title", "scenario", "시나리오"),
    "templates": ("name", "title", "template_name", "템플릿"),
}

CONTENT_ALIASES: dict[str, tuple[str, ...]] = {
    "documents": ("content", "body", "text", "내용"),
    "faq": ("answer", "a", "content", "답변"),
    "manual": ("content", "body", "text", "description", "내용"),
    "scenarios": ("description", "content", "script", "flow", "설명"),
    "templates": ("content", "template", "body", "text", "내용"),
}

CATEGORY_ALIASES = ("category", "categories", "분류", "카테고리")
LIST_SPLIT = re.compile(r"[,;|]")
PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _text(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _as_list(value: Any) -> list[str]:
    if _is_missing(value):
        return []
    if isinstance(value, (list, tuple)):
        return [_text(item) for item in value if not _is_missing(item)]
    return [part.strip() for part in LIST_SPLIT.split(str(value)) if part.strip()]


def _pick(row: Mapping[str, Any], aliases: tuple[str, ...]) -> tuple[str | None, Any]:
    for alias in aliases:
        if alias in row and not _is_missing(row[alias]):
            return alias, row[alias]
    return None, None


def _priority(value: Any, label: str) -> int | None:
    if _is_missing(value):
        return None
    try:
        priority = int(float(str(value).strip()))
    except (ValueError, OverflowError) as exc:
        raise PartialParseFailure(f"{label}: malformed record, priority {value!r} is not a number") from exc
    if not 1 <= priority <= 5:
        raise PartialParseFailure(f"{label}: malformed record, priority must be between 1 and 5")
    return priority


def normalize_record(
    raw: Mapping[str, Any],
    data_type: DataType,
    *,
    label: str,
    provenance: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Map a raw row onto the canonical record for ``data_type``.

    Raises :class:`PartialParseFailure` when the row is unusable; ``label``
    identifies the row in the message ("row 4", "page 2", ...).
    """

    row = {str(key).strip().lower(): value for key, value in raw.items() if key is not None}

    title_key, title = _pick(row, TITLE_ALIASES[data_type])
    content_key, content = _pick(row, CONTENT_ALIASES[data_type])
    if title_key is None:
        raise PartialParseFailure(f"{label}: malformed record, missing {TITLE_ALIASES[data_type][0]}")
    if content_key is None:
        raise PartialParseFailure(f"{label}: malformed record, missing {CONTENT_ALIASES[data_type][0]}")

    category_key, category = _pick(row, CATEGORY_ALIASES)
    record: dict[str, Any] = {
        "title": _text(title),
        "content": _text(content),
        "category": _text(category) or None,
    }
    used = {title_key, content_key, category_key}

    if data_type == "documents":
        key, value = _pick(row, ("tags", "keywords", "태그"))
        record["tags"] = _as_list(value)
        used.add(key)
    elif data_type == "faq":
        key, value = _pick(row, ("priority", "우선순위"))
        record["priority"] = _priority(value, label)
        used.add(key)
    elif data_type == "manual":
        key, value = _pick(row, ("section", "chapter", "page"))
        record["section"] = _text(value) or None
        used.add(key)
    elif data_type == "scenarios":
        key, value = _pick(row, ("triggers", "keywords", "trigger", "트리거"))
        record["triggers"] = _as_list(value)
        used.add(key)
    elif data_type == "templates":
        key, value = _pick(row, ("variables", "placeholders", "변수"))
        variables = _as_list(value)
        if not variables:
            variables = list(dict.fromkeys(PLACEHOLDER.findall(record["content"])))
        record["variables"] = variables
        used.add(key)

    metadata = {key: _text(value) for key, value in row.items() if key not in used and not _is_missing(value)}
    if metadata:
        record["metadata"] = metadata
    record.update(provenance or {})
    return record
