"""Post-seed workspace configuration stage."""
from __future__ import annotations

import logging

from backend.core.errors import InitializationError, external_call
from backend.domain import ConfigApplyDetails, ConfigApplyResult, ConfigOperations
from backend.infrastructure import LogLedger, StorageBackend

logger = logging.getLogger(__name__)


class ConfigApplier:
    """Runs vector index build, trigger rule registration and category sync, in that order."""

    def __init__(self, ledger: LogLedger, storage: StorageBackend) -> None:
        self._ledger = ledger
        self._storage = storage

    def apply_workspace_config(
        self,
        workspace_id: str,
        operations: ConfigOperations,
        *,
        ledger_key: str,
    ) -> ConfigApplyResult:
        details = ConfigApplyDetails(workspace_id=workspace_id, requested_operations=operations.requested())
        entry = self._ledger.start(ledger_key, "config_apply", "Workspace configuration started", details)
        logger.info(
            "workspace configuration started",
            extra={"workspace_id": workspace_id, "operations": details.requested_operations, "log_id": entry.id},
        )

        try:
            if operations.create_vector_index:
                with external_call("build_vector_index"):
                    self._storage.build_vector_index(workspace_id)
                details.vector_index_status = "created"
                details.applied_operations.append("create_vector_index")

            if operations.register_trigger_rules:
                with external_call("register_trigger_rules"):
                    details.trigger_rules_count = self._storage.register_trigger_rules(workspace_id)
                details.applied_operations.append("register_trigger_rules")

            if operations.sync_categories:
                with external_call("sync_categories"):
                    details.synced_categories_count = self._storage.sync_categories(workspace_id)
                details.applied_operations.append("sync_categories")
        except InitializationError as exc:
            if operations.create_vector_index and details.vector_index_status is None:
                details.vector_index_status = "failed"
            self._ledger.fail(entry.id, "Workspace configuration failed", str(exc), details)
            logger.warning(
                "workspace configuration failed",
                extra={"workspace_id": workspace_id, "applied": details.applied_operations, "error": str(exc)},
            )
            return ConfigApplyResult(
                workspace_id=workspace_id,
                success=False,
                applied_operations=list(details.applied_operations),
                vector_index_status=details.vector_index_status,
                trigger_rules_count=details.trigger_rules_count,
                synced_categories_count=details.synced_categories_count,
                error=str(exc),
                error_type=exc.code,
            )

        self._ledger.complete(entry.id, "Workspace configuration completed", details)
        logger.info(
            "workspace configuration completed",
            extra={"workspace_id": workspace_id, "applied": details.applied_operations},
        )
        return ConfigApplyResult(
            workspace_id=workspace_id,
            success=True,
            applied_operations=list(details.applied_operations),
            vector_index_status=details.vector_index_status,
            trigger_rules_count=details.trigger_rules_count,
            synced_categories_count=details.synced_categories_count,
        )
