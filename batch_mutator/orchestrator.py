"""
Orchestrator for foreground runs: wires settings, store and workers, profiles
execution, and persists run reports.

Usage (example from CLI):
    from batch_mutator.orchestrator import run_update

    report = run_update(batch_size=100)
    print(report["rows"], report["chunks"])

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from batch_mutator.config import get_settings
from batch_mutator.domain.models import UNPROCESSED
from batch_mutator.infrastructure.gateway import StoreGateway
from batch_mutator.infrastructure.postgres_store import PostgresStore
from batch_mutator.loader import PopulationLoader
from batch_mutator.processor import ChunkedUpdateProcessor
from batch_mutator.utils.logging import get_logger
from batch_mutator.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


def _round_float(value: float, decimals: int = 2) -> float:
    """Round a float to specified decimal places for human-readable output."""
    return round(value, decimals)


def build_store(dsn_override: Optional[str] = None) -> PostgresStore:
    """Create the Postgres gateway and fail fast if the store is unreachable."""
    store = PostgresStore(dsn_override=dsn_override)
    store.ping()
    return store


def processor_factory(
    store: StoreGateway,
    batch_size: Optional[int] = None,
    fetch_size: Optional[int] = None,
) -> Callable[[], ChunkedUpdateProcessor]:
    """Return a callable building a fresh processor per run."""

    def _factory() -> ChunkedUpdateProcessor:
        return ChunkedUpdateProcessor(store, batch_size=batch_size, fetch_size=fetch_size)

    return _factory


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    with latest_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
    with archive_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def _merge_result(result: Dict[str, Any], stats: ProfileStats) -> dict:
    """Merge a run result with profiler stats, rounding floats for readability."""
    merged = dict(result)
    merged.setdefault("rows", 0)
    # Profiler wall-clock wins over the run's own timing
    merged["duration_seconds"] = _round_float(
        stats.duration_seconds or merged.get("duration_seconds") or 0.0
    )
    merged["throughput_rows_per_sec"] = (
        _round_float(merged["rows"] / merged["duration_seconds"])
        if merged["duration_seconds"]
        else 0.0
    )
    merged["peak_rss_bytes"] = stats.peak_rss_bytes
    merged["peak_traced_bytes"] = stats.peak_traced_bytes
    merged["cpu_percent"] = _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None
    merged["profile"] = {
        "label": stats.label,
        "start_ts": _round_float(stats.start_ts, 3),
        "end_ts": _round_float(stats.end_ts, 3),
        "duration_seconds": _round_float(stats.duration_seconds),
    }
    return merged


def run_update(
    batch_size: Optional[int] = None,
    fetch_size: Optional[int] = None,
    store: Optional[StoreGateway] = None,
    results_dir: Path | str = "results",
    persist: bool = True,
) -> dict:
    """
    Run the chunked update processor in the foreground and report on it.

    Parameters
    ----------
    batch_size : int | None
        Records per write transaction. Defaults to settings.batch_size.
    fetch_size : int | None
        Rows per cursor fetch. Defaults to settings.fetch_size.
    store : StoreGateway | None
        Gateway to use; defaults to a settings-based PostgresStore.
    results_dir : Path | str
        Directory to store JSON artifacts.
    persist : bool
        Whether to write the report to disk.

    Returns
    -------
    dict
        Run result merged with profiler stats.
    """
    settings = get_settings()
    gateway = store if store is not None else build_store()
    processor = ChunkedUpdateProcessor(gateway, batch_size=batch_size, fetch_size=fetch_size)

    with profile_block(processor.name) as stats:
        result = processor.run(UNPROCESSED)
    report = _merge_result(dict(result), stats)
    report["batch_size"] = processor.batch_size
    report["fetch_size"] = processor.fetch_size

    if persist:
        _persist_results(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "env": settings.app_env,
                "result": report,
            },
            Path(results_dir),
        )
    return report


def run_population(
    count: Optional[int] = None,
    batch_size: Optional[int] = None,
    store: Optional[StoreGateway] = None,
) -> dict:
    """Seed the store with `count` unprocessed records and report on it."""
    gateway = store if store is not None else build_store()
    loader = PopulationLoader(gateway, batch_size=batch_size)
    with profile_block("populate") as stats:
        result = loader.populate(count)
    return _merge_result(dict(result), stats)


__all__ = [
    "build_store",
    "processor_factory",
    "run_population",
    "run_update",
]
