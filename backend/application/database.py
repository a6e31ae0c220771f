"""Tenant database initialization stage."""
from __future__ import annotations

import logging

from backend.core.catalog import DOCUMENT_COLLECTIONS, DOCUMENT_INDEXES, RELATIONAL_SCHEMAS, index_names
from backend.core.errors import InitializationError, NotFoundError, external_call
from backend.domain import (
    CONNECTION_KINDS,
    ConnectionDescriptor,
    ConnectionKind,
    DatabaseInitDetails,
    DatabaseInitResult,
)
from backend.infrastructure import ConnectionRegistry, LogLedger, StorageBackend

logger = logging.getLogger(__name__)


class DatabaseInitializer:
    """Creates the relational schemas and document collections of a tenant."""

    def __init__(self, ledger: LogLedger, registry: ConnectionRegistry, storage: StorageBackend) -> None:
        self._ledger = ledger
        self._registry = registry
        self._storage = storage

    def initialize_tenant_database(self, tenant_id: str) -> DatabaseInitResult:
        entry = self._ledger.start(
            tenant_id,
            "database_init",
            "Tenant database initialization started",
            DatabaseInitDetails(),
        )
        logger.info("database initialization started", extra={"tenant_id": tenant_id, "log_id": entry.id})

        initialized: list[ConnectionKind] = []
        try:
            connections = self._registry.get_connections(tenant_id)
            if not connections:
                raise NotFoundError(f"no database connection registered for tenant {tenant_id}")

            for kind in CONNECTION_KINDS:
                connection = connections.get(kind)
                if connection is None:
                    continue
                self._initialize_connection(tenant_id, connection)
                initialized.append(kind)
        except InitializationError as exc:
            self._ledger.fail(
                entry.id,
                "Tenant database initialization failed",
                str(exc),
                DatabaseInitDetails(initialized_kinds=list(initialized)),
            )
            logger.warning(
                "database initialization failed",
                extra={"tenant_id": tenant_id, "log_id": entry.id, "error": str(exc)},
            )
            return DatabaseInitResult(tenant_id=tenant_id, success=False, error=str(exc), error_type=exc.code)

        self._ledger.complete(
            entry.id,
            "Tenant database initialization completed",
            DatabaseInitDetails(initialized_kinds=list(initialized)),
        )
        logger.info(
            "database initialization completed",
            extra={"tenant_id": tenant_id, "log_id": entry.id, "kinds": initialized},
        )
        return DatabaseInitResult(tenant_id=tenant_id, success=True, initialized_kinds=initialized)

    def _initialize_connection(self, tenant_id: str, connection: ConnectionDescriptor) -> None:
        if connection.kind == "relational":
            started, finished = "Relational schema creation started", "Relational schema creation"
        else:
            started, finished = "Document collection creation started", "Document collection creation"

        step = self._ledger.start(
            tenant_id,
            "database_init",
            started,
            DatabaseInitDetails(kind=connection.kind, connection=connection.label),
        )
        try:
            if connection.kind == "relational":
                with external_call("create_schema"):
                    self._storage.create_schema(connection, RELATIONAL_SCHEMAS)
                details = DatabaseInitDetails(
                    kind=connection.kind,
                    connection=connection.label,
                    schemas=list(RELATIONAL_SCHEMAS),
                )
            else:
                with external_call("create_collections"):
                    self._storage.create_collections(connection, DOCUMENT_COLLECTIONS, DOCUMENT_INDEXES)
                details = DatabaseInitDetails(
                    kind=connection.kind,
                    connection=connection.label,
                    collections=list(DOCUMENT_COLLECTIONS),
                    indexes=index_names(),
                )
        except InitializationError as exc:
            self._ledger.fail(step.id, f"{finished} failed", str(exc))
            raise

        self._ledger.complete(step.id, f"{finished} completed", details)
        logger.info(
            "connection initialized",
            extra={"tenant_id": tenant_id, "kind": connection.kind, "connection": connection.label},
        )
