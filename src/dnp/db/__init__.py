"""Persistence helpers."""

from dnp.db.store import (
    DocumentNotFoundError,
    DocumentStore,
    InMemoryDocumentStore,
    PostgresDocumentStore,
    Predicate,
)

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "PostgresDocumentStore",
    "Predicate",
]
