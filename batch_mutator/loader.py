"""
Population loader: seeds the records table with synthetic, unprocessed rows.

Records are labelled `USER-<n>` with a null marker and written in groups of
`batch_size`, each group in its own atomic write. A failing group is not
retried; the error is logged and propagated, and the groups already written
stay committed.
"""

from __future__ import annotations

import time
from typing import Iterator, List, Optional, TypedDict

from batch_mutator.config import get_settings
from batch_mutator.domain.models import Record
from batch_mutator.errors import BatchMutatorError, ConfigurationError
from batch_mutator.infrastructure.gateway import StoreGateway
from batch_mutator.utils.logging import get_logger

log = get_logger(__name__)

LABEL_PREFIX = "USER-"


class LoadResult(TypedDict, total=False):
    rows: int
    chunks: int
    duration_seconds: float
    throughput_rows_per_sec: float


def _generate_records(count: int, start: int = 0) -> Iterator[Record]:
    for n in range(start, start + count):
        yield Record(label=f"{LABEL_PREFIX}{n}")


class PopulationLoader:
    """
    Generate `count` records and bulk-write them in fixed-size groups.
    """

    def __init__(
        self,
        store: StoreGateway,
        batch_size: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.batch_size = settings.batch_size if batch_size is None else batch_size
        self.actor = actor or settings.audit_actor
        self._store = store

        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")

    def populate(self, count: Optional[int] = None, start: int = 0) -> LoadResult:
        """
        Write `count` new records (default from settings), labels starting at `start`.
        """
        total = get_settings().population_count if count is None else count
        if total < 0:
            raise ConfigurationError(f"count must not be negative, got {total}")

        log.info(
            "[POPULATE START]",
            extra={"count": total, "batch_size": self.batch_size, "start": start},
        )
        started = time.perf_counter()
        group: List[Record] = []
        rows = 0
        chunks = 0

        try:
            for record in _generate_records(total, start=start):
                group.append(record)
                if len(group) == self.batch_size:
                    rows += self._store.bulk_write(group, self.actor)
                    chunks += 1
                    group.clear()
            if group:
                rows += self._store.bulk_write(group, self.actor)
                chunks += 1
        except BatchMutatorError as exc:
            exc.with_details(failed_chunk=chunks + 1, committed_rows=rows)
            log.exception("[POPULATE FAILED]", extra={"error": str(exc), **exc.details})
            raise

        duration = time.perf_counter() - started
        log.info("[POPULATE COMPLETE]", extra={"rows": rows, "chunks": chunks})
        return LoadResult(
            rows=rows,
            chunks=chunks,
            duration_seconds=duration,
            throughput_rows_per_sec=rows / duration if duration > 0 else 0.0,
        )


__all__ = ["PopulationLoader", "LoadResult", "LABEL_PREFIX"]
