"""Domain entities for tenant initialization orchestration."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Union

from backend.core.errors import FileReadError

ConnectionKind = Literal["relational", "document"]
ConnectionStatus = Literal["connected", "disconnected", "error"]
OperationType = Literal["database_init", "data_seed", "config_apply"]
LogStatus = Literal["pending", "in_progress", "completed", "failed"]
DataType = Literal["documents", "faq", "manual", "scenarios", "templates"]
DetectedType = Literal["csv", "json", "xlsx", "pdf", "text"]
VectorIndexStatus = Literal["created", "updated", "failed"]

CONNECTION_KINDS: tuple[ConnectionKind, ...] = ("relational", "document")
DATA_TYPES: tuple[DataType, ...] = ("documents", "faq", "manual", "scenarios", "templates")
CONFIG_OPERATIONS: tuple[str, ...] = ("create_vector_index", "register_trigger_rules", "sync_categories")
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
UNKNOWN_WORKSPACE = "unknown"


@dataclass(slots=True)
class ConnectionDescriptor:
    """A tenant database connection as registered at provisioning time."""

    id: str
    tenant_id: str
    kind: ConnectionKind
    host: str
    port: int
    database_name: str
    username: str
    encrypted_credential: str
    status: ConnectionStatus = "disconnected"
    registered_at: datetime | None = None

    @property
    def label(self) -> str:
        return f"{self.host}:{self.port}/{self.database_name}"

    def to_public_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("encrypted_credential")
        data["registered_at"] = self.registered_at.isoformat() if self.registered_at else None
        return data


@dataclass(slots=True)
class UploadedFile:
    """An already received upload: either in-memory bytes or a path on disk."""

    filename: str
    content: bytes | None = None
    path: Path | None = None
    content_type: str | None = None

    def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise FileReadError(self.filename, "no content was received")
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise FileReadError(self.filename, str(exc)) from exc


@dataclass(slots=True)
class ParseSummary:
    """What a seed log entry keeps of a :class:`FileParseResult`."""

    filename: str
    detected_type: DetectedType
    total_records: int
    parsed_records: int
    failed_records: int
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FileParseResult:
    filename: str
    detected_type: DetectedType
    total_records: int
    parsed_records: int
    failed_records: int
    errors: list[str] = field(default_factory=list)
    records: list[dict[str, Any]] = field(default_factory=list)

    def summary(self) -> ParseSummary:
        return ParseSummary(
            filename=self.filename,
            detected_type=self.detected_type,
            total_records=self.total_records,
            parsed_records=self.parsed_records,
            failed_records=self.failed_records,
            errors=list(self.errors),
        )


# ----------------------------------------------------------------------
# log entry details, one shape per operation type
# ----------------------------------------------------------------------
@dataclass(slots=True)
class DatabaseInitDetails:
    """Details of a database_init entry.

    ``kind`` is ``None`` on the tenant-level entry and names the connection kind
    on the per-connection sub-step entries.
    """

    operation_type: Literal["database_init"] = "database_init"
    kind: ConnectionKind | None = None
    connection: str | None = None
    schemas: list[str] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)
    indexes: list[str] = field(default_factory=list)
    initialized_kinds: list[ConnectionKind] = field(default_factory=list)


@dataclass(slots=True)
class SeedOptions:
    batch_size: int | None = None
    overwrite_existing: bool = False
    auto_categorize: bool = False


@dataclass(slots=True)
class DataSeedDetails:
    workspace_id: str
    data_type: DataType
    operation_type: Literal["data_seed"] = "data_seed"
    options: SeedOptions = field(default_factory=SeedOptions)
    processed_files: int = 0
    total_records: int = 0
    parsed_records: int = 0
    failed_records: int = 0
    processing_time_ms: float | None = None
    parse_results: list[ParseSummary] = field(default_factory=list)


@dataclass(slots=True)
class ConfigOperations:
    create_vector_index: bool = False
    register_trigger_rules: bool = False
    sync_categories: bool = False

    def requested(self) -> list[str]:
        return [name for name in CONFIG_OPERATIONS if getattr(self, name)]


@dataclass(slots=True)
class ConfigApplyDetails:
    workspace_id: str
    operation_type: Literal["config_apply"] = "config_apply"
    requested_operations: list[str] = field(default_factory=list)
    applied_operations: list[str] = field(default_factory=list)
    vector_index_status: VectorIndexStatus | None = None
    trigger_rules_count: int | None = None
    synced_categories_count: int | None = None


LogDetails = Union[DatabaseInitDetails, DataSeedDetails, ConfigApplyDetails]


def details_from_dict(data: dict[str, Any] | None) -> LogDetails | None:
    """Rebuild a details object from its serialised form."""

    if not data:
        return None
    payload = dict(data)
    operation_type = payload.get("operation_type")
    if operation_type == "database_init":
        return DatabaseInitDetails(**payload)
    if operation_type == "data_seed":
        payload["options"] = SeedOptions(**(payload.get("options") or {}))
        payload["parse_results"] = [ParseSummary(**item) for item in payload.get("parse_results") or []]
        return DataSeedDetails(**payload)
    if operation_type == "config_apply":
        return ConfigApplyDetails(**payload)
    raise ValueError(f"unknown details operation_type: {operation_type!r}")


@dataclass(slots=True)
class InitializationLogEntry:
    """One record of the append-only initialization ledger."""

    id: str
    tenant_id: str
    operation_type: OperationType
    status: LogStatus
    message: str
    started_at: datetime
    details: LogDetails | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def workspace_id(self) -> str | None:
        return getattr(self.details, "workspace_id", None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "operation_type": self.operation_type,
            "status": self.status,
            "message": self.message,
            "details": asdict(self.details) if self.details is not None else None,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


# ----------------------------------------------------------------------
# operation results
# ----------------------------------------------------------------------
@dataclass(slots=True)
class DatabaseInitResult:
    tenant_id: str
    success: bool
    initialized_kinds: list[ConnectionKind] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None


@dataclass(slots=True)
class SeedResult:
    workspace_id: str
    data_type: DataType
    success: bool
    processed_files: int = 0
    total_records: int = 0
    parsed_records: int = 0
    failed_records: int = 0
    processing_time_ms: float = 0.0
    error: str | None = None
    error_type: str | None = None


@dataclass(slots=True)
class ConfigApplyResult:
    workspace_id: str
    success: bool
    applied_operations: list[str] = field(default_factory=list)
    vector_index_status: VectorIndexStatus | None = None
    trigger_rules_count: int | None = None
    synced_categories_count: int | None = None
    error: str | None = None
    error_type: str | None = None


@dataclass(slots=True)
class WorkspaceStatus:
    data_seeding: LogStatus = "pending"
    config_applied: LogStatus = "pending"


@dataclass(slots=True)
class TenantInitializationStatus:
    tenant_id: str
    overall_status: LogStatus
    database_status: dict[str, LogStatus] = field(default_factory=dict)
    workspace_status: dict[str, WorkspaceStatus] = field(default_factory=dict)
    logs: list[InitializationLogEntry] = field(default_factory=list)
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "overall_status": self.overall_status,
            "database_status": dict(self.database_status),
            "workspace_status": {key: asdict(value) for key, value in self.workspace_status.items()},
            "logs": [entry.to_dict() for entry in self.logs],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
