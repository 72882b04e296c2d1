"""
Domain package for the batch mutator.

Exports the core domain models used by the loader, the processor and the store
gateways. Keep this package focused on data definitions and validation concerns.
"""

from batch_mutator.domain.models import UNPROCESSED, Predicate, Record, new_token

__all__ = [
    "Record",
    "Predicate",
    "UNPROCESSED",
    "new_token",
]
