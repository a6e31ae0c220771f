"""Registry of per-tenant database connection descriptors."""
from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Protocol

import yaml

from backend.core.credentials import CredentialCipher
from backend.core.schema import ConnectionRegistration
from backend.domain import ConnectionDescriptor, ConnectionKind, ConnectionStatus

from .ledger import utcnow


class ConnectionRegistry(Protocol):
    """Persistence contract for connection descriptors."""

    def register(
        self,
        tenant_id: str,
        kind: ConnectionKind,
        host: str,
        port: int,
        database_name: str,
        username: str,
        password: str,
    ) -> ConnectionDescriptor: ...

    def get_connections(self, tenant_id: str) -> dict[ConnectionKind, ConnectionDescriptor]: ...

    def history(self, tenant_id: str) -> list[ConnectionDescriptor]: ...

    def update_status(self, connection_id: str, status: ConnectionStatus) -> ConnectionDescriptor: ...

    def reveal_credential(self, connection_id: str) -> str: ...

    def reset(self) -> None: ...


class InMemoryConnectionRegistry:
    """Descriptors are never removed; a newer registration supersedes an older one."""

    def __init__(self, cipher: CredentialCipher | None = None) -> None:
        self._cipher = cipher or CredentialCipher()
        self._lock = threading.Lock()
        self._descriptors: list[ConnectionDescriptor] = []
        self._counter = 0

    def register(
        self,
        tenant_id: str,
        kind: ConnectionKind,
        host: str,
        port: int,
        database_name: str,
        username: str,
        password: str,
    ) -> ConnectionDescriptor:
        encrypted = self._cipher.encrypt(password)
        with self._lock:
            self._counter += 1
            descriptor = ConnectionDescriptor(
                id=f"conn-{self._counter:05d}",
                tenant_id=tenant_id,
                kind=kind,
                host=host,
                port=port,
                database_name=database_name,
                username=username,
                encrypted_credential=encrypted,
                registered_at=utcnow(),
            )
            self._descriptors.append(descriptor)
            return copy.copy(descriptor)

    def get_connections(self, tenant_id: str) -> dict[ConnectionKind, ConnectionDescriptor]:
        active: dict[ConnectionKind, ConnectionDescriptor] = {}
        with self._lock:
            for descriptor in self._descriptors:
                if descriptor.tenant_id == tenant_id:
                    active[descriptor.kind] = copy.copy(descriptor)
        return active

    def history(self, tenant_id: str) -> list[ConnectionDescriptor]:
        with self._lock:
            return [copy.copy(item) for item in self._descriptors if item.tenant_id == tenant_id]

    def _find(self, connection_id: str) -> ConnectionDescriptor:
        for descriptor in self._descriptors:
            if descriptor.id == connection_id:
                return descriptor
        raise KeyError(connection_id)

    def update_status(self, connection_id: str, status: ConnectionStatus) -> ConnectionDescriptor:
        with self._lock:
            descriptor = self._find(connection_id)
            descriptor.status = status
            return copy.copy(descriptor)

    def reveal_credential(self, connection_id: str) -> str:
        with self._lock:
            token = self._find(connection_id).encrypted_credential
        return self._cipher.decrypt(token)

    def reset(self) -> None:
        with self._lock:
            self._descriptors.clear()
            self._counter = 0


def load_connections_file(registry: ConnectionRegistry, path: Path) -> list[ConnectionDescriptor]:
    """Register every connection listed in a JSON or YAML file (a list of objects)."""

    with path.open("r", encoding="utf-8") as fp:
        items = yaml.safe_load(fp) if path.suffix.lower() in {".yaml", ".yml"} else json.load(fp)
    registered: list[ConnectionDescriptor] = []
    for item in items if isinstance(items, list) else [items]:
        payload = ConnectionRegistration(**item)
        registered.append(registry.register(**payload.model_dump()))
    return registered
