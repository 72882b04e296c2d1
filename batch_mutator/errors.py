"""
Error taxonomy for the batch mutator.

Store faults are translated into these types at the gateway boundary so the
loader, the processor and the trigger never depend on driver exceptions.
None of them are retried internally; they terminate the current operation and
are logged and propagated to whoever invoked it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BatchMutatorError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def with_details(self, **details: Any) -> "BatchMutatorError":
        """Attach extra context (e.g. the failing chunk index) and return self."""
        self.details.update(details)
        return self

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v}" for k, v in sorted(self.details.items()))
        return f"{self.message} ({context})"


class ConfigurationError(BatchMutatorError):
    """Invalid chunk/fetch sizes or an unreachable store, detected before any scan starts."""


class StoreError(BatchMutatorError):
    """A page fetch or a write against the store failed."""


class TransientStoreError(StoreError):
    """Connectivity failure during a page fetch or a chunk write. Fatal to the run."""


class DataIntegrityError(StoreError):
    """A constraint was violated by a write, e.g. a duplicate marker token."""


__all__ = [
    "BatchMutatorError",
    "ConfigurationError",
    "StoreError",
    "TransientStoreError",
    "DataIntegrityError",
]
