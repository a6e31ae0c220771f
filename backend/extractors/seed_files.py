"""Parser turning uploaded seed files into normalised record batches.

Malformed rows never raise: they are counted as failed records and described
in ``FileParseResult.errors``.  Only a file that cannot be read at all (missing
content, corrupt workbook or PDF, undecodable CSV header) raises
:class:`~backend.core.errors.FileReadError`.
"""

from __future__ import annotations

import codecs
import io
import json
import re
from pathlib import Path
from typing import Any, Iterable

import pandas as pd
from pypdf import PdfReader

from backend.core.errors import FileReadError, PartialParseFailure
from backend.domain import DataType, FileParseResult, UploadedFile
from backend.extractors import detect
from backend.extractors.records import normalize_record

MAX_ERRORS = 20
SINGLE_RECORD_TYPES = {"documents", "manual"}
BLOCK_FIELD = re.compile(r"^(category|triggers|keywords|tags|priority|variables|section)\s*:\s*(.*)$", re.IGNORECASE)
QUESTION_PREFIX = re.compile(r"^(q|question|질문)\s*[:.)]\s*", re.IGNORECASE)
ANSWER_PREFIX = re.compile(r"^(a|answer|답변)\s*[:.)]\s*", re.IGNORECASE)


class _Collector:
    def __init__(self, filename: str, data_type: DataType) -> None:
        self.filename = filename
        self.data_type = data_type
        self.records: list[dict[str, Any]] = []
        self.errors: list[str] = []
        self.total = 0

    def add(self, raw: dict[str, Any], label: str, **provenance: Any) -> None:
        self.total += 1
        try:
            record = normalize_record(
                raw,
                self.data_type,
                label=label,
                provenance={"source_file": self.filename, **provenance},
            )
        except PartialParseFailure as exc:
            self.errors.append(str(exc))
            return
        self.records.append(record)

    def reject(self, message: str) -> None:
        self.total += 1
        self.errors.append(message)

    def result(self, detected_type: str) -> FileParseResult:
        errors = self.errors[:MAX_ERRORS]
        if len(self.errors) > MAX_ERRORS:
            errors.append(f"... and {len(self.errors) - MAX_ERRORS} more errors")
        parsed = len(self.records)
        return FileParseResult(
            filename=self.filename,
            detected_type=detected_type,  # type: ignore[arg-type]
            total_records=self.total,
            parsed_records=parsed,
            failed_records=self.total - parsed,
            errors=errors,
            records=self.records,
        )


def _strip_bom(content: bytes) -> bytes:
    return content[len(codecs.BOM_UTF8) :] if content.startswith(codecs.BOM_UTF8) else content


def _decode_lines(content: bytes) -> tuple[list[tuple[int, str]], list[int]]:
    """Decode line by line so one bad line does not spoil the whole file."""

    decoded: list[tuple[int, str]] = []
    undecodable: list[int] = []
    for number, raw in enumerate(_strip_bom(content).splitlines(), start=1):
        try:
            decoded.append((number, raw.decode("utf-8")))
        except UnicodeDecodeError:
            undecodable.append(number)
    return decoded, undecodable


def _unterminated_quote(texts: Iterable[str]) -> int | None:
    """Index of the line opening a quoted CSV field that is never closed.

    Follows the csv module's quoting rules: a quote only opens a field at the
    start of that field, and a doubled quote inside a quoted field is literal.
    """

    state = "start"
    record_start = 0
    for index, text in enumerate(texts):
        if state != "quoted":
            state = "start"
            record_start = index
        for char in text:
            if state == "quoted":
                state = "closing" if char == '"' else "quoted"
            elif state == "closing":
                state = "quoted" if char == '"' else ("start" if char == "," else "field")
            elif char == ",":
                state = "start"
            elif state == "start" and char == '"':
                state = "quoted"
            elif state == "start" and char == " ":
                continue
            else:
                state = "field"
    return record_start if state == "quoted" else None


# ----------------------------------------------------------------------
# readers
# ----------------------------------------------------------------------
def _parse_csv(file: UploadedFile, content: bytes, collector: _Collector) -> None:
    lines, undecodable = _decode_lines(content)
    lines = [(number, text) for number, text in lines if text.strip()]
    if not lines:
        return
    if undecodable and undecodable[0] < lines[0][0]:
        raise FileReadError(file.filename, "header line is not valid UTF-8")

    for number in undecodable:
        collector.reject(f"line {number}: encoding issue, not valid UTF-8")

    unterminated = _unterminated_quote(text for _, text in lines)
    if unterminated == 0:
        raise FileReadError(file.filename, "header has an unterminated quote")
    if unterminated is not None:
        for number, _ in lines[unterminated:]:
            collector.reject(f"line {number}: malformed record, unterminated quote")
        lines = lines[:unterminated]

    bad_lines: list[list[str]] = []
    try:
        frame = pd.read_csv(
            io.StringIO("\n".join(text for _, text in lines)),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine="python",
            on_bad_lines=bad_lines.append,
        )
    except pd.errors.EmptyDataError:
        return
    except pd.errors.ParserError as exc:
        raise FileReadError(file.filename, f"unreadable CSV: {exc}") from exc

    for fields in bad_lines:
        collector.reject(
            f"malformed record: expected {len(frame.columns)} fields, got {len(fields)} ({', '.join(fields)[:60]})"
        )
    for position, row in enumerate(frame.to_dict(orient="records"), start=1):
        collector.add(row, f"row {position}", source_row=position)


def _parse_xlsx(file: UploadedFile, content: bytes, collector: _Collector) -> None:
    try:
        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None, dtype=str)
    except Exception as exc:  # pandas/openpyxl raise a range of error types on corrupt workbooks
        raise FileReadError(file.filename, f"unreadable workbook: {exc}") from exc

    for sheet_name, frame in sheets.items():
        frame = frame.rename(columns={col: str(col).strip() for col in frame.columns}).dropna(how="all")
        for position, row in enumerate(frame.to_dict(orient="records"), start=1):
            values = {key: (None if pd.isna(value) else value) for key, value in row.items()}
            collector.add(values, f"{sheet_name} row {position}", source_row=position, source_sheet=sheet_name)


def _json_items(document: Any, data_type: DataType) -> list[Any]:
    if isinstance(document, list):
        return document
    if isinstance(document, dict):
        for key in ("records", "items", "data", data_type):
            if isinstance(document.get(key), list):
                return document[key]
    return [document]


def _parse_json(file: UploadedFile, content: bytes, collector: _Collector) -> None:
    try:
        document = json.loads(_strip_bom(content).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        _parse_json_lines(content, collector)
        return
    except RecursionError as exc:
        raise FileReadError(file.filename, "JSON document is nested too deeply") from exc

    for position, item in enumerate(_json_items(document, collector.data_type), start=1):
        if isinstance(item, dict):
            collector.add(item, f"item {position}", source_row=position)
        else:
            collector.reject(f"item {position}: malformed record, expected an object")


def _parse_json_lines(content: bytes, collector: _Collector) -> None:
    lines, undecodable = _decode_lines(content)
    for number in undecodable:
        collector.reject(f"line {number}: encoding issue, not valid UTF-8")
    for number, text in lines:
        if not text.strip():
            continue
        try:
            item = json.loads(text)
        except (json.JSONDecodeError, RecursionError):
            collector.reject(f"line {number}: malformed record, invalid JSON")
            continue
        if isinstance(item, dict):
            collector.add(item, f"line {number}", source_row=number)
        else:
            collector.reject(f"line {number}: malformed record, expected an object")


def _byte_blocks(content: bytes) -> list[tuple[int, str | None]]:
    """Split on blank lines; a block that is not valid UTF-8 decodes to ``None``."""

    blocks: list[tuple[int, str | None]] = []
    current: list[bytes] = []
    start = 0
    for number, raw in enumerate(_strip_bom(content).splitlines(), start=1):
        if raw.strip():
            if not current:
                start = number
            current.append(raw)
            continue
        if current:
            blocks.append((start, _decode_block(current)))
            current = []
    if current:
        blocks.append((start, _decode_block(current)))
    return blocks


def _decode_block(lines: list[bytes]) -> str | None:
    try:
        return b"\n".join(lines).decode("utf-8")
    except UnicodeDecodeError:
        return None


def _text_blocks(text: str) -> list[tuple[int, str | None]]:
    return _byte_blocks(text.encode("utf-8"))


def _parse_blocks(blocks: Iterable[tuple[int, str | None]], collector: _Collector) -> None:
    for line_number, block in blocks:
        if block is None:
            collector.reject(f"block at line {line_number}: encoding issue, not valid UTF-8")
            continue
        fields: dict[str, Any] = {}
        body: list[str] = []
        lines = [line.strip() for line in block.splitlines()]
        for line in lines[1:]:
            match = BLOCK_FIELD.match(line)
            if match:
                fields[match.group(1).lower()] = match.group(2)
            else:
                body.append(ANSWER_PREFIX.sub("", line, count=1) if not body else line)
        fields["title"] = QUESTION_PREFIX.sub("", lines[0], count=1)
        fields["content"] = "\n".join(body)
        collector.add(fields, f"block at line {line_number}", source_row=line_number)


def _parse_text(file: UploadedFile, content: bytes, collector: _Collector) -> None:
    if collector.data_type not in SINGLE_RECORD_TYPES:
        _parse_blocks(_byte_blocks(content), collector)
        return
    try:
        text = _strip_bom(content).decode("utf-8")
    except UnicodeDecodeError:
        collector.reject("document: encoding issue, not valid UTF-8")
        return
    collector.add({"title": Path(file.filename).stem, "content": text}, "document")


def _parse_pdf(file: UploadedFile, content: bytes, collector: _Collector) -> None:
    try:
        reader = PdfReader(io.BytesIO(content))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:  # pypdf raises a range of error types on corrupt input
        raise FileReadError(file.filename, f"unreadable PDF: {exc}") from exc

    if collector.data_type not in SINGLE_RECORD_TYPES:
        _parse_blocks(_text_blocks("\n\n".join(pages)), collector)
        return

    stem = Path(file.filename).stem
    for number, text in enumerate(pages, start=1):
        if not text.strip():
            collector.reject(f"page {number}: no extractable text")
            continue
        collector.add(
            {"title": f"{stem} (page {number})", "content": text, "section": f"page {number}"},
            f"page {number}",
            source_page=number,
        )


_READERS = {
    "csv": _parse_csv,
    "xlsx": _parse_xlsx,
    "json": _parse_json,
    "pdf": _parse_pdf,
    "text": _parse_text,
}


def parse(file: UploadedFile, data_type: DataType) -> FileParseResult:
    """Parse one uploaded file into records for ``data_type``."""

    detected_type = detect.detect(file.filename)
    content = file.read()
    collector = _Collector(file.filename, data_type)
    _READERS[detected_type](file, content, collector)
    return collector.result(detected_type)
