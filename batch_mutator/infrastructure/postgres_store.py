"""
PostgreSQL store gateway.

Scans run inside a read-only transaction on a dedicated connection and use a
named (server-side) cursor, so only one page of `page_size` rows is ever
materialized client-side. Writes borrow a connection from the pool and run in
their own transaction; inserts go through COPY, marker updates through
executemany.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Iterator, Optional, Sequence

import psycopg
from psycopg import Connection, sql
from psycopg.rows import class_row
from psycopg_pool import ConnectionPool

from batch_mutator.config import get_settings
from batch_mutator.domain.models import Predicate, Record
from batch_mutator.errors import (
    ConfigurationError,
    DataIntegrityError,
    StoreError,
    TransientStoreError,
)
from batch_mutator.infrastructure.db_factory import get_sync_connection, get_sync_pool
from batch_mutator.utils.logging import get_logger

log = get_logger(__name__)

TABLE = sql.Identifier("public", "records")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS public.records (
    id          BIGSERIAL PRIMARY KEY,
    label       TEXT NOT NULL,
    marker      TEXT UNIQUE,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    created_by  TEXT,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_by  TEXT
);
CREATE INDEX IF NOT EXISTS records_unprocessed_idx
    ON public.records (id) WHERE marker IS NULL;
"""

_COLUMNS = "id, label, marker, created_at, created_by, updated_at, updated_by"


def translate_error(exc: psycopg.Error, operation: str) -> StoreError:
    """Map a psycopg exception onto the package error taxonomy."""
    details = {"operation": operation, "sqlstate": getattr(exc, "sqlstate", None)}
    if isinstance(exc, psycopg.IntegrityError):
        return DataIntegrityError(f"Integrity violation during {operation}: {exc}", details)
    if isinstance(exc, (psycopg.OperationalError, psycopg.InterfaceError)):
        return TransientStoreError(f"Store unavailable during {operation}: {exc}", details)
    return StoreError(f"Store failure during {operation}: {exc}", details)


@contextmanager
def _translated(operation: str) -> Generator[None, None, None]:
    try:
        yield
    except psycopg.Error as exc:
        raise translate_error(exc, operation) from exc


class _PostgresWriteTransaction:
    """Write handle bound to one pooled connection inside an open transaction."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def save_all(self, records: Sequence[Record], actor: str) -> int:
        now = datetime.now(timezone.utc)
        new = [r for r in records if r.id is None]
        existing = [r for r in records if r.id is not None]

        with self._conn.cursor() as cur:
            if new:
                copy_sql = sql.SQL(
                    "COPY {} (label, marker, created_at, created_by, updated_at, updated_by) "
                    "FROM STDIN"
                ).format(TABLE)
                with cur.copy(copy_sql) as copy:
                    for record in new:
                        copy.write_row((record.label, record.marker, now, actor, now, actor))
            if existing:
                update_sql = sql.SQL(
                    "UPDATE {} SET marker = %s, updated_at = %s, updated_by = %s WHERE id = %s"
                ).format(TABLE)
                cur.executemany(
                    update_sql,
                    [(record.marker, now, actor, record.id) for record in existing],
                )
        return len(new) + len(existing)


class PostgresStore:
    """
    Store gateway backed by PostgreSQL via psycopg 3.

    Parameters
    ----------
    dsn_override : str, optional
        Use this DSN (and a private write pool) instead of the settings-based
        shared pool. Mainly for tests and scripts.
    """

    def __init__(
        self,
        dsn_override: Optional[str] = None,
        pool_min_size: Optional[int] = None,
        pool_max_size: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._dsn_override = dsn_override
        self.pool_min_size = pool_min_size or settings.db_pool_min_size
        self.pool_max_size = pool_max_size or settings.db_pool_max_size
        self._pool_instance: Optional[ConnectionPool] = None

    def _get_pool(self) -> ConnectionPool:
        if self._pool_instance is not None:
            return self._pool_instance
        if self._dsn_override:
            self._pool_instance = ConnectionPool(
                conninfo=self._dsn_override,
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
                open=True,
            )
        else:
            self._pool_instance = get_sync_pool(
                min_size=self.pool_min_size, max_size=self.pool_max_size
            )
        return self._pool_instance

    def _connect(self) -> Connection:
        return get_sync_connection(self._dsn_override)

    def close(self) -> None:
        """Close the private pool, if this store owns one."""
        if self._pool_instance is not None and self._dsn_override:
            self._pool_instance.close()
        self._pool_instance = None

    def init_schema(self) -> None:
        """Create the records table and its partial index if missing."""
        with _translated("init_schema"):
            with self._get_pool().connection() as conn:
                with conn.transaction():
                    conn.execute(SCHEMA_SQL)
        log.info("Schema ensured", extra={"table": "public.records"})

    def ping(self) -> None:
        try:
            conn = self._connect()
        except (psycopg.OperationalError, psycopg.InterfaceError) as exc:
            raise ConfigurationError(f"Store unreachable: {exc}") from exc
        try:
            with _translated("ping"):
                conn.execute("SELECT 1")
        finally:
            conn.close()

    def count(self, predicate: Predicate) -> int:
        query = sql.SQL("SELECT count(*) FROM {} WHERE {}").format(
            TABLE, sql.SQL(predicate.where_sql)
        )
        with _translated("count"):
            with self._get_pool().connection() as conn:
                with conn.transaction():
                    row = conn.execute(query).fetchone()
        return int(row[0]) if row else 0

    @contextmanager
    def scan(self, predicate: Predicate, page_size: int) -> Generator[Iterator[Record], None, None]:
        """
        Stream records matching `predicate` through a server-side cursor.

        The cursor lives in a read-only transaction on its own connection, which
        is closed when the context exits.
        """
        if page_size <= 0:
            raise ConfigurationError(f"page_size must be positive, got {page_size}")

        query = sql.SQL("SELECT {} FROM {} WHERE {} ORDER BY id").format(
            sql.SQL(_COLUMNS), TABLE, sql.SQL(predicate.where_sql)
        )
        try:
            conn = self._connect()
        except psycopg.Error as exc:
            raise translate_error(exc, "scan") from exc

        try:
            with _translated("scan"):
                conn.read_only = True
                # Use name to trigger server-side cursor
                cur = conn.cursor(name=f"scan_{predicate.name}", row_factory=class_row(Record))
                cur.itersize = page_size
                cur.execute(query)
            yield self._iter_pages(cur, page_size)
        finally:
            # Closing the connection discards the server-side cursor as well.
            conn.close()

    @staticmethod
    def _iter_pages(cur: psycopg.ServerCursor, page_size: int) -> Iterator[Record]:
        """Yield records page by page using fetchmany."""
        while True:
            with _translated("scan"):
                page = cur.fetchmany(page_size)
            if not page:
                break
            yield from page

    @contextmanager
    def write_transaction(self) -> Generator[_PostgresWriteTransaction, None, None]:
        with _translated("write"):
            with self._get_pool().connection() as conn:
                with conn.transaction():
                    yield _PostgresWriteTransaction(conn)

    def bulk_write(self, records: Sequence[Record], actor: str) -> int:
        with self.write_transaction() as tx:
            return tx.save_all(records, actor)


__all__ = ["PostgresStore", "SCHEMA_SQL", "translate_error"]
