"""Infrastructure layer exports."""

from .connections import ConnectionRegistry, InMemoryConnectionRegistry, load_connections_file
from .duckdb_ledger import DuckDBLogLedger
from .ledger import InMemoryLogLedger, LogLedger, sort_newest_first
from .storage import InMemoryStorageBackend, StorageBackend
from .storage_http import HttpStorageBackend, StorageBackendError

__all__ = [
    "ConnectionRegistry",
    "DuckDBLogLedger",
    "HttpStorageBackend",
    "InMemoryConnectionRegistry",
    "InMemoryLogLedger",
    "InMemoryStorageBackend",
    "LogLedger",
    "StorageBackend",
    "StorageBackendError",
    "load_connections_file",
    "sort_newest_first",
]
