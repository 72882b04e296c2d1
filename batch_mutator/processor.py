"""
Chunked update processor.

Streams every record matching a predicate through one read-only scan session,
assigns each a fresh marker token and commits the marked records in chunks of
`batch_size`, each chunk in its own write transaction:

- memory stays O(batch_size + fetch_size) regardless of how many records match;
- the store sees O(M / batch_size) write transactions for M matching records;
- a failure loses at most the chunk in flight, earlier chunks stay committed.

The trailing partial chunk is flushed once the scan is exhausted.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, TypedDict

from batch_mutator.config import get_settings
from batch_mutator.domain.models import UNPROCESSED, Predicate, Record, new_token
from batch_mutator.errors import BatchMutatorError, ConfigurationError
from batch_mutator.infrastructure.gateway import StoreGateway, WriteTransaction
from batch_mutator.utils.logging import get_logger

log = get_logger(__name__)


class RunResult(TypedDict, total=False):
    """
    Metrics returned by a processor run.

    `rows` counts records whose marker was committed during the run.
    """

    predicate: str
    rows: int
    chunks: int
    chunk_sizes: List[int]
    peak_buffered: int
    cancelled: bool
    duration_seconds: float
    throughput_rows_per_sec: float
    error: Optional[str]


class ChunkedUpdateProcessor:
    """
    Mark every eligible record exactly once, committing in fixed-size chunks.

    Parameters
    ----------
    store : StoreGateway
        Gateway providing the scan session and the write transactions.
    batch_size : int, optional
        Records per write transaction (default from settings, 100).
    fetch_size : int, optional
        Rows fetched from the scan cursor per round trip (default from settings).
        Independent of `batch_size`.
    actor : str, optional
        Audit actor stamped on every write.
    token_factory : callable, optional
        Produces marker tokens; defaults to random UUIDs.
    """

    name: str = "chunked_update"
    description: str = "Server-side cursor scan + per-chunk write transactions."

    def __init__(
        self,
        store: StoreGateway,
        batch_size: Optional[int] = None,
        fetch_size: Optional[int] = None,
        actor: Optional[str] = None,
        token_factory: Callable[[], str] = new_token,
    ) -> None:
        settings = get_settings()
        self.batch_size = settings.batch_size if batch_size is None else batch_size
        self.fetch_size = settings.fetch_size if fetch_size is None else fetch_size
        self.actor = actor or settings.audit_actor
        self._store = store
        self._token_factory = token_factory

        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.fetch_size <= 0:
            raise ConfigurationError(f"fetch_size must be positive, got {self.fetch_size}")

    def run(
        self,
        predicate: Predicate = UNPROCESSED,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunResult:
        """
        Scan, mark and commit all records matching `predicate`.

        Parameters
        ----------
        predicate : Predicate
            Selects eligible records; defaults to `marker IS NULL`.
        cancel_event : threading.Event, optional
            Checked before each chunk write; when set, the run stops at that
            chunk boundary without writing the pending chunk.

        Returns
        -------
        RunResult
            Records committed, chunk sizes, peak buffer size and timing.

        Raises
        ------
        TransientStoreError
            A page fetch or a chunk write lost connectivity.
        DataIntegrityError
            A chunk write violated a constraint (e.g. duplicate marker).
        """
        log.info(
            f"[RUN START] {self.name}",
            extra={
                "predicate": predicate.name,
                "batch_size": self.batch_size,
                "fetch_size": self.fetch_size,
                "actor": self.actor,
            },
        )
        start = time.perf_counter()
        chunk: List[Record] = []
        chunk_sizes: List[int] = []
        peak_buffered = 0
        cancelled = False

        try:
            with self._store.scan(predicate, self.fetch_size) as records:
                for record in records:
                    chunk.append(record.with_marker(self._token_factory()))
                    peak_buffered = max(peak_buffered, len(chunk))
                    log.debug("Marked record", extra={"record_id": record.id})

                    if len(chunk) == self.batch_size:
                        if not self._flush(chunk, chunk_sizes, cancel_event):
                            cancelled = True
                            break

            if chunk and not cancelled:
                cancelled = not self._flush(chunk, chunk_sizes, cancel_event)
        except BatchMutatorError as exc:
            exc.with_details(committed_chunks=len(chunk_sizes), committed_rows=sum(chunk_sizes))
            log.exception(
                f"[RUN FAILED] {self.name}",
                extra={"predicate": predicate.name, "error": str(exc), **exc.details},
            )
            raise

        duration = time.perf_counter() - start
        rows = sum(chunk_sizes)
        result = RunResult(
            predicate=predicate.name,
            rows=rows,
            chunks=len(chunk_sizes),
            chunk_sizes=chunk_sizes,
            peak_buffered=peak_buffered,
            cancelled=cancelled,
            duration_seconds=duration,
            throughput_rows_per_sec=rows / duration if duration > 0 else 0.0,
        )
        log.info(
            f"[RUN {'CANCELLED' if cancelled else 'COMPLETE'}] {self.name}",
            extra={"predicate": predicate.name, "rows": rows, "chunks": len(chunk_sizes)},
        )
        return result

    def _flush(
        self,
        chunk: List[Record],
        chunk_sizes: List[int],
        cancel_event: Optional[threading.Event],
    ) -> bool:
        """
        Commit `chunk` in a fresh write transaction and clear it.

        Returns False (and writes nothing) if cancellation was requested.
        """
        if cancel_event is not None and cancel_event.is_set():
            log.warning(
                "Cancellation requested, stopping at chunk boundary",
                extra={"committed_chunks": len(chunk_sizes), "pending": len(chunk)},
            )
            return False

        chunk_index = len(chunk_sizes) + 1
        try:
            with self._store.write_transaction() as tx:
                self._write_chunk(tx, chunk)
        except BatchMutatorError as exc:
            exc.with_details(chunk_index=chunk_index, chunk_size=len(chunk))
            raise

        chunk_sizes.append(len(chunk))
        log.info(
            "====FLUSHED====",
            extra={"chunk": chunk_index, "rows": len(chunk), "last_id": chunk[-1].id},
        )
        chunk.clear()
        return True

    def _write_chunk(self, tx: WriteTransaction, chunk: List[Record]) -> None:
        tx.save_all(chunk, self.actor)


__all__ = ["ChunkedUpdateProcessor", "RunResult"]
