"""Database and storage collaborator used by the initialization stages.

The orchestrator never talks to PostgreSQL, MongoDB or the vector store
directly.  Every call goes through a :class:`StorageBackend`; the default
in-memory implementation keeps enough state for local runs and tests, and
``create_app`` installs a real client (see
:mod:`backend.infrastructure.storage_http`) when one is configured.
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from backend.domain import ConnectionDescriptor, DataType


class StorageBackend(Protocol):
    """Contract for database/storage integrations."""

    def create_schema(self, connection: ConnectionDescriptor, schema_defs: Mapping[str, str]) -> None: ...

    def create_collections(
        self,
        connection: ConnectionDescriptor,
        names: Sequence[str],
        index_defs: Mapping[str, Mapping[str, Mapping[str, object]]],
    ) -> None: ...

    def persist_records(
        self,
        workspace_id: str,
        data_type: DataType,
        records: Sequence[dict[str, Any]],
        *,
        overwrite: bool,
        auto_categorize: bool,
        batch_size: int | None = None,
    ) -> None: ...

    def build_vector_index(self, workspace_id: str) -> None: ...

    def register_trigger_rules(self, workspace_id: str) -> int: ...

    def sync_categories(self, workspace_id: str) -> int: ...


DEFAULT_BATCH_SIZE = 500
DEFAULT_CATEGORY = "general"

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "billing": ("bill", "invoice", "payment", "refund", "charge", "결제", "요금"),
    "technical": ("error", "install", "login", "password", "network", "api", "기술", "오류"),
    "account": ("account", "profile", "signup", "sign up", "계정", "가입"),
    "product": ("product", "feature", "plan", "pricing", "제품", "서비스"),
    "greeting": ("hello", "welcome", "thank", "안녕", "감사"),
}

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def categorize(record: Mapping[str, Any]) -> str:
    """Pick a category from keywords in the record title and content."""

    text = f"{record.get('title') or ''} {record.get('content') or ''}".lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


@dataclass
class _WorkspaceStore:
    records: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    batches: list[int] = field(default_factory=list)
    vector_index_builds: int = 0
    trigger_rules: list[dict[str, Any]] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)


class InMemoryStorageBackend:
    """Keeps created schemas and seeded workspace records in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.schemas: dict[str, list[str]] = {}
        self.collections: dict[str, list[str]] = {}
        self.indexes: dict[str, list[str]] = {}
        self._workspaces: dict[str, _WorkspaceStore] = {}

    def _workspace(self, workspace_id: str) -> _WorkspaceStore:
        store = self._workspaces.get(workspace_id)
        if store is None:
            store = _WorkspaceStore()
            self._workspaces[workspace_id] = store
        return store

    # ------------------------------------------------------------------
    # database initialization
    # ------------------------------------------------------------------
    def create_schema(self, connection: ConnectionDescriptor, schema_defs: Mapping[str, str]) -> None:
        with self._lock:
            created = self.schemas.setdefault(connection.id, [])
            for name in schema_defs:
                if name not in created:
                    created.append(name)

    def create_collections(
        self,
        connection: ConnectionDescriptor,
        names: Sequence[str],
        index_defs: Mapping[str, Mapping[str, Mapping[str, object]]],
    ) -> None:
        with self._lock:
            created = self.collections.setdefault(connection.id, [])
            indexes = self.indexes.setdefault(connection.id, [])
            for name in names:
                if name not in created:
                    created.append(name)
                for index_name in index_defs.get(name, {}):
                    qualified = f"{name}.{index_name}"
                    if qualified not in indexes:
                        indexes.append(qualified)

    # ------------------------------------------------------------------
    # workspace data
    # ------------------------------------------------------------------
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
        size = batch_size or DEFAULT_BATCH_SIZE
        prepared: list[dict[str, Any]] = []
        for record in records:
            item = dict(record)
            if auto_categorize and not item.get("category"):
                item["category"] = categorize(item)
            prepared.append(item)

        with self._lock:
            store = self._workspace(workspace_id)
            target = [] if overwrite else list(store.records.get(data_type, []))
            for start in range(0, len(prepared), size):
                chunk = prepared[start : start + size]
                target.extend(chunk)
                store.batches.append(len(chunk))
            store.records[data_type] = target

    def list_records(self, workspace_id: str, data_type: DataType | None = None) -> list[dict[str, Any]]:
        with self._lock:
            store = self._workspaces.get(workspace_id)
            if store is None:
                return []
            if data_type is not None:
                return list(store.records.get(data_type, []))
            collected: list[dict[str, Any]] = []
            for rows in store.records.values():
                collected.extend(rows)
            return collected

    def batch_sizes(self, workspace_id: str) -> list[int]:
        with self._lock:
            store = self._workspaces.get(workspace_id)
            return list(store.batches) if store else []

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------
    def build_vector_index(self, workspace_id: str) -> None:
        with self._lock:
            self._workspace(workspace_id).vector_index_builds += 1

    def vector_index_builds(self, workspace_id: str) -> int:
        with self._lock:
            store = self._workspaces.get(workspace_id)
            return store.vector_index_builds if store else 0

    def register_trigger_rules(self, workspace_id: str) -> int:
        with self._lock:
            store = self._workspace(workspace_id)
            rules: list[dict[str, Any]] = []
            for record in store.records.get("scenarios", []):
                for keyword in record.get("triggers") or []:
                    rules.append({"kind": "keyword", "keyword": keyword, "target": record.get("title")})
            for record in store.records.get("templates", []):
                variables = record.get("variables") or _PLACEHOLDER.findall(str(record.get("content") or ""))
                if variables:
                    rules.append({"kind": "template", "variables": list(variables), "target": record.get("title")})
            store.trigger_rules = rules
            return len(rules)

    def sync_categories(self, workspace_id: str) -> int:
        with self._lock:
            store = self._workspace(workspace_id)
            categories: list[str] = []
            for rows in store.records.values():
                for record in rows:
                    category = record.get("category")
                    if category and category not in categories:
                        categories.append(str(category))
            store.categories = categories
            return len(categories)

    def reset(self) -> None:
        with self._lock:
            self.schemas.clear()
            self.collections.clear()
            self.indexes.clear()
            self._workspaces.clear()
