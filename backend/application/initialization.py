"""Facade over the initialization stages used by the HTTP layer and scripts."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Mapping, Sequence

from backend.core.errors import NotFoundError, ValidationError
from backend.core.validation import (
    require_identifier,
    validate_config_operations,
    validate_data_type,
    validate_seed_options,
)
from backend.domain import (
    ConfigOperations,
    ConnectionDescriptor,
    ConnectionKind,
    InitializationLogEntry,
    SeedOptions,
    UploadedFile,
)
from backend.infrastructure import (
    ConnectionRegistry,
    InMemoryConnectionRegistry,
    InMemoryLogLedger,
    InMemoryStorageBackend,
    LogLedger,
    StorageBackend,
)

from .configuration import ConfigApplier
from .database import DatabaseInitializer
from .seeding import FileParser, WorkspaceSeeder
from .status import StatusAggregator


def _failure(error: Exception, code: str) -> dict[str, Any]:
    return {"success": False, "error": str(error), "error_type": code}


class InitializationService:
    """Coordinates tenant initialization use cases and shapes their envelopes.

    Every public operation returns ``{"success": bool, ...}``; failures carry
    ``error`` and ``error_type`` instead of raising.
    """

    def __init__(
        self,
        ledger: LogLedger,
        registry: ConnectionRegistry,
        storage: StorageBackend,
        parser: FileParser | None = None,
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self.storage = storage
        self._database = DatabaseInitializer(ledger, registry, storage)
        self._seeder = WorkspaceSeeder(ledger, storage, parser) if parser else WorkspaceSeeder(ledger, storage)
        self._config = ConfigApplier(ledger, storage)
        self._status = StatusAggregator(ledger)

    # ------------------------------------------------------------------
    # connections
    # ------------------------------------------------------------------
    def register_connection(
        self,
        tenant_id: str,
        kind: ConnectionKind,
        host: str,
        port: int,
        database_name: str,
        username: str,
        password: str = "",
    ) -> ConnectionDescriptor:
        return self.registry.register(
            tenant_id=tenant_id,
            kind=kind,
            host=host,
            port=port,
            database_name=database_name,
            username=username,
            password=password,
        )

    def list_connections(self, tenant_id: str) -> list[ConnectionDescriptor]:
        return self.registry.history(tenant_id)

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    def initialize_database(self, tenant_id: str) -> dict[str, Any]:
        try:
            tenant_id = require_identifier("tenant_id", tenant_id)
        except ValidationError as exc:
            return {**_failure(exc, exc.code), "initialized_kinds": [], "logs": []}

        result = self._database.initialize_tenant_database(tenant_id)
        payload: dict[str, Any] = {
            "success": result.success,
            "initialized_kinds": list(result.initialized_kinds),
            "logs": self._logs_for(tenant_id),
        }
        if not result.success:
            payload.update(error=result.error, error_type=result.error_type)
        return payload

    def seed_workspace(
        self,
        workspace_id: str,
        data_type: str,
        files: Sequence[UploadedFile],
        options: SeedOptions | Mapping[str, Any] | None = None,
        *,
        tenant_id: str | None = None,
    ) -> dict[str, Any]:
        try:
            workspace_id = require_identifier("workspace_id", workspace_id)
            checked_type = validate_data_type(data_type)
            checked_options = validate_seed_options(options)
            if not files:
                raise ValidationError("at least one file must be provided")
            ledger_key = require_identifier("tenant_id", tenant_id) if tenant_id is not None else workspace_id
        except ValidationError as exc:
            return {**_failure(exc, exc.code), "logs": []}

        result = self._seeder.seed_workspace_data(
            workspace_id,
            checked_type,
            files,
            checked_options,
            ledger_key=ledger_key,
        )
        data = asdict(result)
        error, error_type = data.pop("error"), data.pop("error_type")
        payload: dict[str, Any] = {"success": result.success, "data": data, "logs": self._logs_for(ledger_key)}
        if not result.success:
            payload.update(error=error, error_type=error_type)
        return payload

    def apply_config(
        self,
        workspace_id: str,
        operations: ConfigOperations | Mapping[str, Any] | None = None,
        *,
        tenant_id: str | None = None,
    ) -> dict[str, Any]:
        try:
            workspace_id = require_identifier("workspace_id", workspace_id)
            checked = validate_config_operations(operations)
            ledger_key = require_identifier("tenant_id", tenant_id) if tenant_id is not None else workspace_id
        except ValidationError as exc:
            return {**_failure(exc, exc.code), "logs": []}

        result = self._config.apply_workspace_config(workspace_id, checked, ledger_key=ledger_key)
        data = asdict(result)
        error, error_type = data.pop("error"), data.pop("error_type")
        payload: dict[str, Any] = {"success": result.success, "data": data, "logs": self._logs_for(ledger_key)}
        if not result.success:
            payload.update(error=error, error_type=error_type)
        return payload

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------
    def get_status(self, tenant_id: str) -> dict[str, Any]:
        try:
            tenant_id = require_identifier("tenant_id", tenant_id)
        except ValidationError as exc:
            return _failure(exc, exc.code)

        status = self._status.get_initialization_status(tenant_id)
        if status is None:
            error = NotFoundError(f"no initialization records for tenant {tenant_id}")
            return _failure(error, error.code)
        return {"success": True, "data": status.to_dict()}

    def get_all_logs(self) -> list[InitializationLogEntry]:
        return self.ledger.query()

    def get_tenant_logs(self, tenant_id: str) -> list[InitializationLogEntry]:
        return self.ledger.query(tenant_id=tenant_id)

    def _logs_for(self, key: str) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.ledger.query(tenant_id=key)]

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self.ledger.reset()
        self.registry.reset()
        reset_storage = getattr(self.storage, "reset", None)
        if callable(reset_storage):
            reset_storage()


_service = InitializationService(InMemoryLogLedger(), InMemoryConnectionRegistry(), InMemoryStorageBackend())


def configure_initialization_service(
    *,
    ledger: LogLedger | None = None,
    registry: ConnectionRegistry | None = None,
    storage: StorageBackend | None = None,
) -> InitializationService:
    """Rebuild the process service, keeping any collaborator not passed in."""

    global _service
    _service = InitializationService(
        ledger if ledger is not None else _service.ledger,
        registry if registry is not None else _service.registry,
        storage if storage is not None else _service.storage,
    )
    return _service


def get_initialization_service() -> InitializationService:
    """Return the singleton initialization service for the process."""

    return _service


def reset_initialization_state() -> None:
    """Reset the in-memory ledger, registry and storage (used in tests)."""

    _service.reset()
