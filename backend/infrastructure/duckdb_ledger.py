"""DuckDB-backed implementation of the log ledger."""
from __future__ import annotations

import json
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import duckdb

from backend.core.errors import LedgerTransitionError
from backend.domain import (
    TERMINAL_STATUSES,
    InitializationLogEntry,
    LogDetails,
    OperationType,
    details_from_dict,
)

from .ledger import utcnow

_COLUMNS = "id, tenant_id, operation_type, status, message, details, started_at, completed_at, error_message"


def _to_db_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _dump_details(details: LogDetails | None) -> str | None:
    return json.dumps(asdict(details), ensure_ascii=False) if details is not None else None


class DuckDBLogLedger:
    """Durable ledger; entries survive restarts of the orchestrator."""

    def __init__(self, path: Path | str, clock: Callable[[], datetime] = utcnow) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(path))
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS initialization_logs (
                seq BIGINT,
                id VARCHAR,
                tenant_id VARCHAR,
                operation_type VARCHAR,
                status VARCHAR,
                message VARCHAR,
                details VARCHAR,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                error_message VARCHAR
            )
            """
        )
        row = self._conn.execute("SELECT COALESCE(MAX(seq), 0) FROM initialization_logs").fetchone()
        self._counter = int(row[0]) if row else 0

    @staticmethod
    def _row_to_entry(row: tuple[Any, ...]) -> InitializationLogEntry:
        details = details_from_dict(json.loads(row[5])) if row[5] else None
        return InitializationLogEntry(
            id=row[0],
            tenant_id=row[1],
            operation_type=row[2],
            status=row[3],
            message=row[4],
            details=details,
            started_at=_from_db_time(row[6]),  # type: ignore[arg-type]
            completed_at=_from_db_time(row[7]),
            error_message=row[8],
        )

    def _fetch_one(self, entry_id: str) -> InitializationLogEntry | None:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM initialization_logs WHERE id = ?", [entry_id]
        ).fetchone()
        return self._row_to_entry(row) if row else None

    def start(
        self,
        tenant_id: str,
        operation_type: OperationType,
        message: str,
        details: LogDetails | None = None,
    ) -> InitializationLogEntry:
        with self._lock:
            self._counter += 1
            entry = InitializationLogEntry(
                id=f"log-{self._counter:06d}",
                tenant_id=tenant_id,
                operation_type=operation_type,
                status="in_progress",
                message=message,
                started_at=self._clock(),
                details=details,
            )
            self._conn.execute(
                "INSERT INTO initialization_logs VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    self._counter,
                    entry.id,
                    entry.tenant_id,
                    entry.operation_type,
                    entry.status,
                    entry.message,
                    _dump_details(details),
                    _to_db_time(entry.started_at),
                    None,
                    None,
                ],
            )
            return self._fetch_one(entry.id)  # type: ignore[return-value]

    def complete(self, entry_id: str, message: str, details: LogDetails | None = None) -> InitializationLogEntry:
        return self._finish(entry_id, "completed", message, details, None)

    def fail(
        self,
        entry_id: str,
        message: str,
        error_message: str,
        details: LogDetails | None = None,
    ) -> InitializationLogEntry:
        return self._finish(entry_id, "failed", message, details, error_message)

    def _finish(
        self,
        entry_id: str,
        status: str,
        message: str,
        details: LogDetails | None,
        error_message: str | None,
    ) -> InitializationLogEntry:
        with self._lock:
            current = self._fetch_one(entry_id)
            if current is None:
                raise KeyError(entry_id)
            if current.status in TERMINAL_STATUSES:
                raise LedgerTransitionError(f"log entry {entry_id} is already {current.status}")
            completed_at = max(self._clock(), current.started_at)
            serialised = _dump_details(details) if details is not None else _dump_details(current.details)
            self._conn.execute(
                """
                UPDATE initialization_logs
                SET status = ?, message = ?, details = ?, completed_at = ?, error_message = ?
                WHERE id = ?
                """,
                [status, message, serialised, _to_db_time(completed_at), error_message, entry_id],
            )
            return self._fetch_one(entry_id)  # type: ignore[return-value]

    def get(self, entry_id: str) -> InitializationLogEntry | None:
        with self._lock:
            return self._fetch_one(entry_id)

    def query(
        self,
        tenant_id: str | None = None,
        operation_type: OperationType | None = None,
    ) -> list[InitializationLogEntry]:
        clauses: list[str] = []
        params: list[Any] = []
        if tenant_id is not None:
            clauses.append("tenant_id = ?")
            params.append(tenant_id)
        if operation_type is not None:
            clauses.append("operation_type = ?")
            params.append(operation_type)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM initialization_logs {where} ORDER BY started_at DESC, seq ASC",
                params,
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def history(self, tenant_id: str) -> list[InitializationLogEntry]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM initialization_logs WHERE tenant_id = ? ORDER BY seq ASC",
                [tenant_id],
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def reset(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM initialization_logs")
            self._counter = 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()
