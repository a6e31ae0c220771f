"""Domain layer definitions."""

from .initialization import (
    CONFIG_OPERATIONS,
    CONNECTION_KINDS,
    DATA_TYPES,
    TERMINAL_STATUSES,
    UNKNOWN_WORKSPACE,
    ConfigApplyDetails,
    ConfigApplyResult,
    ConfigOperations,
    ConnectionDescriptor,
    ConnectionKind,
    ConnectionStatus,
    DatabaseInitDetails,
    DatabaseInitResult,
    DataSeedDetails,
    DataType,
    DetectedType,
    FileParseResult,
    InitializationLogEntry,
    LogDetails,
    LogStatus,
    OperationType,
    ParseSummary,
    SeedOptions,
    SeedResult,
    TenantInitializationStatus,
    UploadedFile,
    WorkspaceStatus,
    details_from_dict,
)

__all__ = [
    "CONFIG_OPERATIONS",
    "CONNECTION_KINDS",
    "DATA_TYPES",
    "TERMINAL_STATUSES",
    "UNKNOWN_WORKSPACE",
    "ConfigApplyDetails",
    "ConfigApplyResult",
    "ConfigOperations",
    "ConnectionDescriptor",
    "ConnectionKind",
    "ConnectionStatus",
    "DatabaseInitDetails",
    "DatabaseInitResult",
    "DataSeedDetails",
    "DataType",
    "DetectedType",
    "FileParseResult",
    "InitializationLogEntry",
    "LogDetails",
    "LogStatus",
    "OperationType",
    "ParseSummary",
    "SeedOptions",
    "SeedResult",
    "TenantInitializationStatus",
    "UploadedFile",
    "WorkspaceStatus",
    "details_from_dict",
]
