"""
Infrastructure package for the batch mutator.

Centralizes store connectivity concerns (connection factory, write pool, the
PostgreSQL gateway). Keep this layer focused on I/O and resource management,
decoupled from the loader/processor logic.
"""

from batch_mutator.infrastructure.db_factory import (
    build_dsn,
    get_sync_connection,
    get_sync_pool,
)
from batch_mutator.infrastructure.gateway import StoreGateway, WriteTransaction
from batch_mutator.infrastructure.postgres_store import PostgresStore

__all__ = [
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
    "PostgresStore",
    "StoreGateway",
    "WriteTransaction",
]
