"""Append-only ledger of initialization operations."""
from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol

from backend.core.errors import LedgerTransitionError
from backend.domain import InitializationLogEntry, LogDetails, OperationType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sort_newest_first(entries: Iterable[InitializationLogEntry]) -> list[InitializationLogEntry]:
    """Order by ``started_at`` descending; equal timestamps keep append order."""

    return sorted(entries, key=lambda entry: entry.started_at, reverse=True)


class LogLedger(Protocol):
    """Storage contract for initialization log entries."""

    def start(
        self,
        tenant_id: str,
        operation_type: OperationType,
        message: str,
        details: LogDetails | None = None,
    ) -> InitializationLogEntry: ...

    def complete(
        self,
        entry_id: str,
        message: str,
        details: LogDetails | None = None,
    ) -> InitializationLogEntry: ...

    def fail(
        self,
        entry_id: str,
        message: str,
        error_message: str,
        details: LogDetails | None = None,
    ) -> InitializationLogEntry: ...

    def get(self, entry_id: str) -> InitializationLogEntry | None: ...

    def query(
        self,
        tenant_id: str | None = None,
        operation_type: OperationType | None = None,
    ) -> list[InitializationLogEntry]: ...

    def history(self, tenant_id: str) -> list[InitializationLogEntry]: ...

    def reset(self) -> None: ...


class InMemoryLogLedger:
    """Process-local ledger; safe for concurrent appends and reads."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: list[InitializationLogEntry] = []
        self._index: dict[str, int] = {}
        self._counter = 0

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
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
                details=copy.deepcopy(details),
            )
            self._index[entry.id] = len(self._entries)
            self._entries.append(entry)
            return copy.deepcopy(entry)

    def complete(
        self,
        entry_id: str,
        message: str,
        details: LogDetails | None = None,
    ) -> InitializationLogEntry:
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
            position = self._index.get(entry_id)
            if position is None:
                raise KeyError(entry_id)
            entry = self._entries[position]
            if entry.is_terminal:
                raise LedgerTransitionError(f"log entry {entry_id} is already {entry.status}")
            entry.message = message
            if details is not None:
                entry.details = copy.deepcopy(details)
            entry.error_message = error_message
            # status and completed_at change together under the lock
            entry.completed_at = max(self._clock(), entry.started_at)
            entry.status = status  # type: ignore[assignment]
            return copy.deepcopy(entry)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get(self, entry_id: str) -> InitializationLogEntry | None:
        with self._lock:
            position = self._index.get(entry_id)
            return copy.deepcopy(self._entries[position]) if position is not None else None

    def query(
        self,
        tenant_id: str | None = None,
        operation_type: OperationType | None = None,
    ) -> list[InitializationLogEntry]:
        with self._lock:
            selected = [
                copy.deepcopy(entry)
                for entry in self._entries
                if (tenant_id is None or entry.tenant_id == tenant_id)
                and (operation_type is None or entry.operation_type == operation_type)
            ]
        return sort_newest_first(selected)

    def history(self, tenant_id: str) -> list[InitializationLogEntry]:
        with self._lock:
            return [copy.deepcopy(entry) for entry in self._entries if entry.tenant_id == tenant_id]

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._index.clear()
            self._counter = 0
