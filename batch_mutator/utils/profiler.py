"""
Profiling utilities for the batch mutator.

This module provides a context manager to measure a foreground processor or
loader run:
- Wall-clock time (perf_counter)
- CPU usage (psutil)
- Memory usage (RSS via psutil + tracemalloc for Python allocations)
- Peak memory via background sampling thread

The peak figures are what make the constant-memory claim of chunked updates
observable on real tables.

Usage example:
    from batch_mutator.utils.profiler import profile_block

    with profile_block("update") as stats:
        processor.run()

    print(stats.duration_seconds, stats.peak_rss_bytes, stats.peak_traced_bytes)
"""

from __future__ import annotations

import contextlib
import threading
import time
import tracemalloc
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    peak_traced_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, enable_tracemalloc: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code with memory tracking.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        Interval in milliseconds for RSS sampling. Lower = more accurate but higher overhead.
    enable_tracemalloc : bool
        Whether to enable tracemalloc for tracking Python-level allocations.

    Notes
    -----
    The background sampling thread captures true peak memory usage, not just
    start/end snapshots.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    peak_rss = process.memory_info().rss
    stop_sampling = threading.Event()

    def _sample_memory() -> None:
        """Background thread to sample RSS at regular intervals."""
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                break
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    tracemalloc_was_running = False
    if enable_tracemalloc:
        tracemalloc_was_running = tracemalloc.is_tracing()
        if not tracemalloc_was_running:
            tracemalloc.start()

    # CPU percent needs a priming call
    process.cpu_percent(interval=None)

    sampler = threading.Thread(target=_sample_memory, name=f"profiler-{label}", daemon=True)
    sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts

        stop_sampling.set()
        sampler.join(timeout=1.0)

        stats.peak_rss_bytes = peak_rss if peak_rss > 0 else None
        stats.cpu_percent = process.cpu_percent(interval=None)

        if enable_tracemalloc and tracemalloc.is_tracing():
            _, peak_traced = tracemalloc.get_traced_memory()
            stats.peak_traced_bytes = peak_traced
            # Stop tracemalloc only if we started it
            if not tracemalloc_was_running:
                tracemalloc.stop()


__all__ = ["ProfileStats", "profile_block"]
