from __future__ import annotations

import logging
import os
import re
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..config.loader import DatabaseConfig
from ..models.process import Process
from .errors import ProcessNotFoundError, StoreError

"""Remote process store on PostgreSQL.

One table, created lazily on first use::

    id TEXT PRIMARY KEY, company_name TEXT, data JSONB, created_at TEXT, updated_at TEXT

``data`` holds the camelCase process document (without its id). Every
psycopg2 failure is re-raised as StoreError so the facade can fall back to
the local store.
"""

__all__ = [
    "PostgresProcessStore",
    "resolve_dsn",
    "connection_factory",
]

logger = logging.getLogger(__name__)

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def resolve_dsn(db_cfg: DatabaseConfig) -> str | None:
    """Connection string by precedence.

    1. ``DATABASE_URL`` / ``PGDSN`` (values from .env are already in os.environ)
    2. individual ``PG*`` variables
    3. the config ``store.database`` section
    Returns None when nothing at all is configured (local-only mode).
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    env_keys = ("PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE")
    if db_cfg.is_empty and not any(os.getenv(k) for k in env_keys):
        return None
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def connection_factory(dsn: str, connect_timeout: int = 5) -> Callable[[], Any]:
    def _connect() -> Any:
        return psycopg2.connect(dsn, connect_timeout=connect_timeout)
    return _connect


class PostgresProcessStore:
    name = "postgres"

    def __init__(self, connect: Callable[[], Any], table: str = "processes") -> None:
        if not _TABLE_RE.match(table):
            raise StoreError(f"invalid table name: {table}")
        self._connect = connect
        self.table = table
        self._table_ready = False

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        conn = None
        try:
            conn = self._connect()
            cur = conn.cursor()
            try:
                if not self._table_ready:
                    self._ensure_table(cur)
                yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()
        except psycopg2.Error as e:
            raise StoreError(f"postgres: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def _ensure_table(self, cur: Any) -> None:
        cur.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table} ("
            "id TEXT PRIMARY KEY, "
            "company_name TEXT NOT NULL, "
            "data JSONB NOT NULL, "
            "created_at TEXT, "
            "updated_at TEXT)"
        )
        self._table_ready = True

    @staticmethod
    def _to_process(process_id: str, data: Any) -> Process:
        doc = dict(data or {})
        doc["id"] = process_id
        return Process.from_dict(doc)

    def list(self) -> list[Process]:
        with self._cursor() as cur:
            cur.execute(f"SELECT id, data FROM {self.table} ORDER BY company_name")
            return [self._to_process(pid, data) for pid, data in cur.fetchall()]

    def get(self, process_id: str) -> Process | None:
        with self._cursor() as cur:
            cur.execute(f"SELECT id, data FROM {self.table} WHERE id = %s", (process_id,))
            row = cur.fetchone()
        return self._to_process(row[0], row[1]) if row else None

    def create(self, process: Process) -> Process:
        created = process.with_id(uuid.uuid4().hex)
        with self._cursor() as cur:
            cur.execute(
                f"INSERT INTO {self.table} (id, company_name, data, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, %s)",
                (
                    created.id,
                    created.company_name,
                    Json(created.to_dict(include_id=False)),
                    created.created_at,
                    created.updated_at,
                ),
            )
        logger.debug("postgres store: created %s (%s)", created.id, created.label)
        return created

    def update(self, process_id: str, process: Process) -> Process:
        updated = process.with_id(process_id)
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE {self.table} SET company_name = %s, data = %s, updated_at = %s WHERE id = %s",
                (updated.company_name, Json(updated.to_dict(include_id=False)), updated.updated_at, process_id),
            )
            if cur.rowcount == 0:
                raise ProcessNotFoundError(f"process not found: {process_id}")
        return updated

    def delete(self, process_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(f"DELETE FROM {self.table} WHERE id = %s", (process_id,))
            return cur.rowcount > 0
