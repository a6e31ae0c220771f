"""HTTP client for a remote tenant data-plane API."""
from __future__ import annotations

from typing import Any, Mapping, Sequence
from urllib.parse import urlparse

import httpx

from backend.domain import ConnectionDescriptor, DataType


class StorageBackendError(RuntimeError):
    """Raised when the remote data-plane service returns an error."""


class HttpStorageBackend:
    """:class:`~backend.infrastructure.storage.StorageBackend` over HTTP."""

    def __init__(
        self,
        api_base: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._base_url = api_base.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _connection_payload(connection: ConnectionDescriptor) -> dict[str, Any]:
        return {
            "id": connection.id,
            "tenant_id": connection.tenant_id,
            "kind": connection.kind,
            "host": connection.host,
            "port": connection.port,
            "database_name": connection.database_name,
            "username": connection.username,
            "encrypted_credential": connection.encrypted_credential,
        }

    def _post(self, path: str, payload: Mapping[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.post(url, json=dict(payload or {}), headers=self._headers)
        except httpx.HTTPError as exc:
            raise StorageBackendError(f"request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            detail = response.text.strip() or response.reason_phrase
            raise StorageBackendError(f"{path} returned {response.status_code}: {detail}")
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise StorageBackendError(f"{path} returned a non-JSON body") from exc
        if isinstance(body, dict) and body.get("success") is False:
            raise StorageBackendError(str(body.get("error") or f"{path} reported failure"))
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _count(body: Mapping[str, Any], path: str) -> int:
        try:
            return int(body["count"])
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageBackendError(f"{path} response is missing an integer count") from exc

    # ------------------------------------------------------------------
    # StorageBackend
    # ------------------------------------------------------------------
    def create_schema(self, connection: ConnectionDescriptor, schema_defs: Mapping[str, str]) -> None:
        self._post(
            f"/connections/{connection.id}/schemas",
            {"connection": self._connection_payload(connection), "schemas": dict(schema_defs)},
        )

    def create_collections(
        self,
        connection: ConnectionDescriptor,
        names: Sequence[str],
        index_defs: Mapping[str, Mapping[str, Mapping[str, object]]],
    ) -> None:
        self._post(
            f"/connections/{connection.id}/collections",
            {
                "connection": self._connection_payload(connection),
                "collections": list(names),
                "indexes": {name: {key: dict(spec) for key, spec in specs.items()} for name, specs in index_defs.items()},
            },
        )

    def persist_records(
        self,
        workspace_id: str,
        data_type: DataType,
        records: Sequence[dict[str, Any]],
        *,
        overwrite: bool,
        auto_categorize: bool,
        batch_size: int | None = None,
    ) -> None:
        self._post(
            f"/workspaces/{workspace_id}/records",
            {
                "data_type": data_type,
                "records": list(records),
                "overwrite": overwrite,
                "auto_categorize": auto_categorize,
                "batch_size": batch_size,
            },
        )

    def build_vector_index(self, workspace_id: str) -> None:
        self._post(f"/workspaces/{workspace_id}/vector-index")

    def register_trigger_rules(self, workspace_id: str) -> int:
        path = f"/workspaces/{workspace_id}/trigger-rules"
        return self._count(self._post(path), path)

    def sync_categories(self, workspace_id: str) -> int:
        path = f"/workspaces/{workspace_id}/categories/sync"
        return self._count(self._post(path), path)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
