"""Read-side reduction of the ledger into a tenant status view."""
from __future__ import annotations

from typing import Iterable

from backend.domain import (
    UNKNOWN_WORKSPACE,
    DatabaseInitDetails,
    InitializationLogEntry,
    LogStatus,
    TenantInitializationStatus,
    WorkspaceStatus,
)
from backend.infrastructure import LogLedger, sort_newest_first


def overall_status(entries: Iterable[InitializationLogEntry]) -> LogStatus:
    statuses = {entry.status for entry in entries}
    if "failed" in statuses:
        return "failed"
    if "in_progress" in statuses:
        return "in_progress"
    if statuses and statuses <= {"completed"}:
        return "completed"
    return "pending"


class StatusAggregator:
    def __init__(self, ledger: LogLedger) -> None:
        self._ledger = ledger

    def get_initialization_status(self, tenant_id: str) -> TenantInitializationStatus | None:
        """Fold the tenant's ledger entries; ``None`` when the tenant has none."""

        history = self._ledger.history(tenant_id)
        if not history:
            return None

        database_status: dict[str, LogStatus] = {}
        workspace_status: dict[str, WorkspaceStatus] = {}
        # oldest first, so later entries overwrite earlier ones
        for entry in history:
            if entry.operation_type == "database_init":
                details = entry.details
                if isinstance(details, DatabaseInitDetails) and details.kind is not None:
                    database_status[details.kind] = entry.status
                continue

            bucket = workspace_status.setdefault(entry.workspace_id or UNKNOWN_WORKSPACE, WorkspaceStatus())
            if entry.operation_type == "data_seed":
                bucket.data_seeding = entry.status
            else:
                bucket.config_applied = entry.status

        logs = sort_newest_first(history)
        return TenantInitializationStatus(
            tenant_id=tenant_id,
            overall_status=overall_status(logs),
            database_status=database_status,
            workspace_status=workspace_status,
            logs=logs,
            last_updated=max(entry.completed_at or entry.started_at for entry in logs),
        )
