"""
Fire-and-forget dispatch of processor runs.

`BackgroundWorker` owns a thread pool and a single-flight table keyed by job
key: a job whose key is still in flight is coalesced instead of started a second
time. `UpdateTrigger` schedules one `ChunkedUpdateProcessor` run on the worker
and returns immediately; outcomes are only reported through logs.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from batch_mutator.domain.models import UNPROCESSED, Predicate
from batch_mutator.processor import ChunkedUpdateProcessor
from batch_mutator.utils.logging import get_logger

log = get_logger(__name__)

Job = Callable[[threading.Event], Any]


@dataclass(frozen=True)
class TriggerReceipt:
    """
    Acknowledgement handed back to the caller of a trigger.

    `scheduled` is False when the request was coalesced into a run that was
    already in flight for the same key.
    """

    job_key: str
    accepted: bool = True
    scheduled: bool = True


class BackgroundWorker:
    """
    Thread-pool backed worker with a per-key single-flight guard.

    Jobs receive the worker's cancellation event; `shutdown(cancel=True)` sets it
    so long-running jobs can stop at their next safe point.
    """

    def __init__(self, max_workers: int = 1, name: str = "batch-mutator") -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._closed = False

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def in_flight(self) -> List[str]:
        """Keys of jobs submitted and not yet finished."""
        with self._lock:
            return sorted(key for key, future in self._in_flight.items() if not future.done())

    def submit(self, key: str, job: Job) -> Optional[Future]:
        """
        Start `job` in the background unless a job with the same key is running.

        Returns the job's future, or None if the request was coalesced.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("BackgroundWorker has been shut down")
            current = self._in_flight.get(key)
            if current is not None and not current.done():
                log.warning("Job already in flight, request coalesced", extra={"job_key": key})
                return None
            future = self._executor.submit(job, self._cancel_event)
            self._in_flight[key] = future

        log.info("Job scheduled", extra={"job_key": key})
        # Outside the lock: the callback runs inline if the job already finished.
        future.add_done_callback(partial(self._on_done, key))
        return future

    def _on_done(self, key: str, future: Future) -> None:
        with self._lock:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

        if future.cancelled():
            log.warning("Job cancelled before start", extra={"job_key": key})
            return
        exc = future.exception()
        if exc is not None:
            log.error(
                "[BACKGROUND JOB FAILED]",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"job_key": key, "error": str(exc)},
            )
            return
        log.info("[BACKGROUND JOB COMPLETE]", extra={"job_key": key, "result": future.result()})

    def shutdown(self, wait: bool = True, cancel: bool = False) -> None:
        """
        Stop accepting jobs; with `cancel=True`, ask running jobs to stop early
        and drop the ones not yet started.
        """
        with self._lock:
            self._closed = True
        if cancel:
            self._cancel_event.set()
        self._executor.shutdown(wait=wait, cancel_futures=cancel)


class UpdateTrigger:
    """
    Schedule a chunked update run on a background worker and detach from it.

    Parameters
    ----------
    worker : BackgroundWorker
        Where runs execute.
    processor_factory : callable
        Builds the processor for each run (in the background thread).
    predicate : Predicate
        Records to process; also part of the single-flight key.
    table : str
        Table name used in the single-flight key.
    """

    def __init__(
        self,
        worker: BackgroundWorker,
        processor_factory: Callable[[], ChunkedUpdateProcessor],
        predicate: Predicate = UNPROCESSED,
        table: str = "records",
    ) -> None:
        self._worker = worker
        self._processor_factory = processor_factory
        self.predicate = predicate
        self.job_key = f"update:{table}:{predicate.name}"

    def fire(self) -> TriggerReceipt:
        """Request a run; never waits for it."""
        future = self._worker.submit(self.job_key, self._run)
        return TriggerReceipt(job_key=self.job_key, accepted=True, scheduled=future is not None)

    def _run(self, cancel_event: threading.Event) -> Dict[str, Any]:
        processor = self._processor_factory()
        result = processor.run(self.predicate, cancel_event=cancel_event)
        return dict(result)


__all__ = ["BackgroundWorker", "TriggerReceipt", "UpdateTrigger"]
