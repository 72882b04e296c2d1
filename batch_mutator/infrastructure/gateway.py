"""
Store gateway interfaces for the batch mutator.

The loader and the processor only talk to the store through these protocols:
a forward-only scan over records matching a predicate, fetched in small pages,
and independent write transactions that commit a finite set of records
atomically. Concrete gateways (e.g. `PostgresStore`) implement both.
"""

from __future__ import annotations

from typing import ContextManager, Iterator, Protocol, Sequence, runtime_checkable

from batch_mutator.domain.models import Predicate, Record


@runtime_checkable
class WriteTransaction(Protocol):
    """
    Handle on one open write transaction.

    Everything saved through the handle commits or rolls back together when the
    context manager that produced it exits.
    """

    def save_all(self, records: Sequence[Record], actor: str) -> int:
        """
        Insert records without an id and update the marker of records with one.

        Parameters
        ----------
        records : Sequence[Record]
            Finite set of records to persist.
        actor : str
            Audit actor stamped on created/updated rows.

        Returns
        -------
        int
            Number of rows written.
        """
        ...


@runtime_checkable
class StoreGateway(Protocol):
    """
    Common interface all store gateways must implement.
    """

    def scan(self, predicate: Predicate, page_size: int) -> ContextManager[Iterator[Record]]:
        """
        Open a read-only scan session over records matching `predicate`.

        Records are yielded lazily in id order and fetched from the store
        `page_size` rows at a time. The session is not resumable: a failed scan
        can only be restarted by opening a new one.
        """
        ...

    def write_transaction(self) -> ContextManager[WriteTransaction]:
        """
        Open a fresh write transaction, independent of any open scan session.
        """
        ...

    def bulk_write(self, records: Sequence[Record], actor: str) -> int:
        """Atomically persist `records` in a transaction of its own."""
        ...

    def count(self, predicate: Predicate) -> int:
        """Count records currently matching `predicate`."""
        ...

    def ping(self) -> None:
        """Raise ConfigurationError if the store is unreachable."""
        ...


__all__ = ["StoreGateway", "WriteTransaction"]
