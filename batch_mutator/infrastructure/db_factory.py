"""
Database connection factory utilities for the batch mutator.

Provides centralized management of PostgreSQL connections and the write pool
with proper lifecycle management. The PoolManager singleton ensures the pool is
cleaned up on application exit.

Scan sessions use a dedicated connection (`get_sync_connection`) while chunk
writes borrow connections from the pool, so a long-lived read cursor never
shares a connection with a write commit.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from batch_mutator.config import get_settings
from batch_mutator.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn() -> str:
    """Compose a DSN string from settings."""
    return get_settings().dsn


class PoolManager:
    """
    Thread-safe singleton for managing the write connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool: Optional[ConnectionPool] = None
                # Register cleanup on exit
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(self, min_size: Optional[int] = None, max_size: Optional[int] = None) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int, optional
            Minimum number of idle connections to keep (default from settings).
        max_size : int, optional
            Maximum total connections in the pool (default from settings).

        Returns
        -------
        ConnectionPool
            The managed sync pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = ConnectionPool(
                    conninfo=settings.dsn,
                    min_size=min_size or settings.db_pool_min_size,
                    max_size=max_size or settings.db_pool_max_size,
                    open=True,
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(self) -> Generator[Connection, None, None]:
        """
        Context manager for obtaining a sync connection from the pool.

        Example
        -------
            manager = PoolManager()
            with manager.sync_connection() as conn:
                with conn.transaction():
                    conn.execute("SELECT 1")
        """
        pool = self.get_sync_pool()
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                try:
                    self._sync_pool.close()
                except psycopg.Error as exc:
                    log.warning("Failed to close write pool", extra={"error": str(exc)})
                finally:
                    self._sync_pool = None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Used for scan sessions, which must not share a connection with chunk writes.

    Parameters
    ----------
    dsn : str, optional
        Connection string; defaults to the one built from settings.

    Returns
    -------
    Connection
        A new psycopg connection instance.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


def get_sync_pool(min_size: Optional[int] = None, max_size: Optional[int] = None) -> ConnectionPool:
    """
    Get or create the write connection pool via PoolManager.
    """
    manager = PoolManager()
    return manager.get_sync_pool(min_size=min_size, max_size=max_size)


__all__ = [
    "PoolManager",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
]
