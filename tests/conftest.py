"""
Pytest configuration for the batch mutator.

Provides fixtures for:
- An in-memory store gateway with fault injection (unit tests)
- Database connection management (integration tests)
- Settings override for integration tests
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Callable, Dict, Generator, Iterator, List, Optional, Sequence, Type

import psycopg
import pytest

from batch_mutator.config import Settings
from batch_mutator.domain.models import Predicate, Record
from batch_mutator.errors import DataIntegrityError, StoreError, TransientStoreError


class _MemoryWriteTransaction:
    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self.staged: List[Record] = []

    def save_all(self, records: Sequence[Record], actor: str) -> int:
        for record in records:
            if record.id is None:
                self.staged.append(record.model_copy(update={"created_by": actor, "updated_by": actor}))
            else:
                self.staged.append(record.model_copy(update={"updated_by": actor}))
        return len(records)


class InMemoryStore:
    """
    Store gateway keeping rows in a dict, with hooks to inject failures.

    Scans see a snapshot taken when the scan opens (like an MVCC read) and are
    served page by page; every write transaction applies all-or-nothing.
    """

    def __init__(self) -> None:
        self.rows: Dict[int, Record] = {}
        self._next_id = 1
        self.write_attempts = 0
        self.write_sizes: List[int] = []
        self.page_sizes: List[int] = []
        self.open_scans = 0
        self.scans_opened = 0
        self.open_scans_during_writes: List[int] = []
        self.fail_on_write: Optional[int] = None
        self.write_error: Type[StoreError] = TransientStoreError
        self.fail_scan_after_pages: Optional[int] = None
        self.on_commit: Optional[Callable[[int], None]] = None

    def seed(self, count: int, processed: bool = False) -> List[Record]:
        created = []
        for n in range(count):
            marker = f"pre-{self._next_id}" if processed else None
            record = Record(id=self._next_id, label=f"USER-{n}", marker=marker)
            self.rows[record.id] = record
            self._next_id += 1
            created.append(record)
        return created

    def markers(self) -> List[Optional[str]]:
        return [self.rows[key].marker for key in sorted(self.rows)]

    @contextmanager
    def scan(self, predicate: Predicate, page_size: int) -> Generator[Iterator[Record], None, None]:
        snapshot = [self.rows[key] for key in sorted(self.rows) if predicate.matches(self.rows[key])]
        self.open_scans += 1
        self.scans_opened += 1
        try:
            yield self._pages(snapshot, page_size)
        finally:
            self.open_scans -= 1

    def _pages(self, snapshot: List[Record], page_size: int) -> Iterator[Record]:
        for pages_served, offset in enumerate(range(0, len(snapshot), page_size)):
            if self.fail_scan_after_pages is not None and pages_served >= self.fail_scan_after_pages:
                raise TransientStoreError("connection lost during fetch")
            page = snapshot[offset : offset + page_size]
            self.page_sizes.append(len(page))
            yield from page

    @contextmanager
    def write_transaction(self) -> Generator[_MemoryWriteTransaction, None, None]:
        self.write_attempts += 1
        self.open_scans_during_writes.append(self.open_scans)
        if self.fail_on_write == self.write_attempts:
            raise self.write_error("write rejected")
        tx = _MemoryWriteTransaction(self)
        yield tx
        self._commit(tx.staged)

    def _commit(self, staged: List[Record]) -> None:
        pending = dict(self.rows)
        next_id = self._next_id
        for record in staged:
            if record.id is None:
                record = record.model_copy(update={"id": next_id})
                next_id += 1
            pending[record.id] = record
        markers = [r.marker for r in pending.values() if r.marker is not None]
        if len(markers) != len(set(markers)):
            raise DataIntegrityError("duplicate key value violates unique constraint on marker")
        self.rows = pending
        self._next_id = next_id
        self.write_sizes.append(len(staged))
        if self.on_commit is not None:
            self.on_commit(len(self.write_sizes))

    def bulk_write(self, records: Sequence[Record], actor: str) -> int:
        with self.write_transaction() as tx:
            return tx.save_all(records, actor)

    def count(self, predicate: Predicate) -> int:
        return sum(1 for record in self.rows.values() if predicate.matches(record))

    def ping(self) -> None:
        return None


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "batch_mutator"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return test_settings.dsn


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            conn.execute("SELECT 1;").fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the records table exists.
    """
    from batch_mutator.infrastructure.postgres_store import SCHEMA_SQL

    db_connection.execute(SCHEMA_SQL)
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_records_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Clean the records table before and after each test function.
    """
    db_connection.execute("TRUNCATE TABLE public.records RESTART IDENTITY CASCADE;")
    db_connection.commit()
    yield
    db_connection.execute("TRUNCATE TABLE public.records RESTART IDENTITY CASCADE;")
    db_connection.commit()


@pytest.fixture(scope="function")
def pg_store(test_dsn: str, clean_records_table):
    """PostgresStore bound to the test database with a private pool."""
    from batch_mutator.infrastructure.postgres_store import PostgresStore

    store = PostgresStore(dsn_override=test_dsn, pool_min_size=1, pool_max_size=2)
    try:
        yield store
    finally:
        store.close()
