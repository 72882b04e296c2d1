"""
Batch Mutator - bounded-memory, chunk-committed record marking for PostgreSQL.

This package scans every record matching a predicate through a server-side
cursor, assigns each a unique marker token and commits the changes in small,
independently durable chunks:

- Population loader for seeding synthetic, unprocessed records
- Chunked update processor (the scan/mark/flush loop)
- Fire-and-forget trigger with a single-flight background worker
- FastAPI endpoint and typer CLI on top

Memory stays bounded by the chunk size plus one cursor page, and a failure
loses at most the chunk in flight.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from batch_mutator.config import Settings, get_settings
from batch_mutator.domain.models import UNPROCESSED, Predicate, Record, new_token
from batch_mutator.errors import (
    BatchMutatorError,
    ConfigurationError,
    DataIntegrityError,
    StoreError,
    TransientStoreError,
)
from batch_mutator.infrastructure.gateway import StoreGateway, WriteTransaction
from batch_mutator.loader import LoadResult, PopulationLoader
from batch_mutator.processor import ChunkedUpdateProcessor, RunResult
from batch_mutator.trigger import BackgroundWorker, TriggerReceipt, UpdateTrigger
from batch_mutator.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "Record",
    "Predicate",
    "UNPROCESSED",
    "new_token",
    # Errors
    "BatchMutatorError",
    "ConfigurationError",
    "StoreError",
    "TransientStoreError",
    "DataIntegrityError",
    # Store gateway
    "StoreGateway",
    "WriteTransaction",
    # Core
    "PopulationLoader",
    "LoadResult",
    "ChunkedUpdateProcessor",
    "RunResult",
    "BackgroundWorker",
    "TriggerReceipt",
    "UpdateTrigger",
    # Logging
    "configure_logging",
    "get_logger",
]
