from __future__ import annotations

import pytest

from batch_mutator.domain.models import UNPROCESSED
from batch_mutator.errors import ConfigurationError, TransientStoreError
from batch_mutator.loader import PopulationLoader

BATCH_SIZE = 100
POPULATION = 250


def test_populate_writes_fixed_size_groups(memory_store) -> None:
    loader = PopulationLoader(memory_store, batch_size=BATCH_SIZE, actor="seeder")

    result = loader.populate(POPULATION)

    assert result["rows"] == POPULATION
    assert result["chunks"] == 3
    assert memory_store.write_sizes == [100, 100, 50]
    assert memory_store.count(UNPROCESSED) == POPULATION


def test_populated_records_have_sequential_labels_and_no_marker(memory_store) -> None:
    PopulationLoader(memory_store, batch_size=4).populate(10)

    records = [memory_store.rows[key] for key in sorted(memory_store.rows)]
    assert [r.label for r in records] == [f"USER-{n}" for n in range(10)]
    assert all(r.marker is None for r in records)
    assert all(r.created_by == "SYSTEM" for r in records)


def test_populate_continues_labels_from_start(memory_store) -> None:
    PopulationLoader(memory_store, batch_size=4).populate(3, start=50)

    labels = sorted(r.label for r in memory_store.rows.values())
    assert labels == ["USER-50", "USER-51", "USER-52"]


def test_failed_group_halts_without_retry(memory_store) -> None:
    memory_store.fail_on_write = 2
    loader = PopulationLoader(memory_store, batch_size=BATCH_SIZE)

    with pytest.raises(TransientStoreError) as excinfo:
        loader.populate(POPULATION)

    assert memory_store.write_attempts == 2
    assert len(memory_store.rows) == BATCH_SIZE
    assert excinfo.value.details["failed_chunk"] == 2
    assert excinfo.value.details["committed_rows"] == BATCH_SIZE


def test_populate_zero_records_writes_nothing(memory_store) -> None:
    result = PopulationLoader(memory_store, batch_size=BATCH_SIZE).populate(0)

    assert result["rows"] == 0
    assert memory_store.write_attempts == 0


def test_invalid_batch_size_is_rejected(memory_store) -> None:
    with pytest.raises(ConfigurationError):
        PopulationLoader(memory_store, batch_size=0)
