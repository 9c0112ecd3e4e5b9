from __future__ import annotations

from .errors import ImportFormatError, ProcessNotFoundError, StoreError
from .local_store import LocalProcessStore
from .postgres_store import PostgresProcessStore, connection_factory, resolve_dsn
from .process_store import ProcessStore

"""Process persistence: PostgreSQL (remote), JSON file (local) and the fallback facade."""

__all__ = [
    "StoreError",
    "ProcessNotFoundError",
    "ImportFormatError",
    "LocalProcessStore",
    "PostgresProcessStore",
    "ProcessStore",
    "connection_factory",
    "resolve_dsn",
]
