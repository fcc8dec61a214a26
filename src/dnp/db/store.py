"""Document-store abstraction used by ingestion and notification matching.

Collections hold JSON documents addressed by id. Only single-document atomicity is
assumed; there are no multi-document transactions.
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Optional, Protocol, Sequence

import orjson
from psycopg import Cursor
from psycopg.types.json import Jsonb

from dnp.config import Settings
from dnp.db.client import db_cursor


Operator = Literal["==", "!="]


@dataclass(frozen=True)
class Predicate:
    """Field comparison; a missing field compares as null."""

    field: str
    op: Operator
    value: Any

    def matches(self, document: dict[str, Any]) -> bool:
        current = document.get(self.field)
        if self.op == "==":
            return current == self.value
        if self.op == "!=":
            return current != self.value
        raise ValueError(f"Unsupported operator: {self.op!r}")


class DocumentStore(Protocol):
    """Persistence operations required by the pipelines."""

    def put(
        self,
        collection: str,
        fields: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        ...

    def query(self, collection: str, predicates: Sequence[Predicate] = ()) -> list[dict[str, Any]]:
        ...

    def update_atomic(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        ...

    def array_union(
        self,
        collection: str,
        doc_id: str,
        field: str,
        values: Iterable[Any],
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        ...


class DocumentNotFoundError(KeyError):
    """Update targeted a document that does not exist."""


def _with_id(doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return {**data, "id": doc_id}


def _merge_union(existing: Any, values: Iterable[Any]) -> list[Any]:
    merged = list(existing) if isinstance(existing, list) else []
    for value in values:
        if value not in merged:
            merged.append(value)
    return merged


class InMemoryDocumentStore:
    """Thread-safe in-process store for dry runs and tests."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def put(
        self,
        collection: str,
        fields: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        data = {key: value for key, value in fields.items() if key != "id"}
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return _with_id(doc_id, copy.deepcopy(data)) if data is not None else None

    def query(self, collection: str, predicates: Sequence[Predicate] = ()) -> list[dict[str, Any]]:
        with self._lock:
            docs = list(self._collections.get(collection, {}).items())
            return [
                _with_id(doc_id, copy.deepcopy(data))
                for doc_id, data in docs
                if all(predicate.matches(data) for predicate in predicates)
            ]

    def update_atomic(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(fields))

    def array_union(
        self,
        collection: str,
        doc_id: str,
        field: str,
        values: Iterable[Any],
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        with self._lock:
            doc = self._collections.setdefault(collection, {}).setdefault(doc_id, {})
            doc[field] = _merge_union(doc.get(field), values)
            doc.update(copy.deepcopy(extra or {}))


def _dumps(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def _jsonb(value: Any) -> Jsonb:
    return Jsonb(value, dumps=_dumps)


class PostgresDocumentStore:
    """Documents kept as JSONB rows in a single ``documents`` table.

    Expected schema::

        create table documents (
            collection text not null,
            id text not null,
            data jsonb not null,
            primary key (collection, id)
        );
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()

    def put(
        self,
        collection: str,
        fields: dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        data = {key: value for key, value in fields.items() if key != "id"}
        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "insert into documents (collection, id, data) values (%s, %s, %s) "
                "on conflict (collection, id) do update set data = excluded.data",
                (collection, doc_id, _jsonb(data)),
            )
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "select data from documents where collection = %s and id = %s",
                (collection, doc_id),
            )
            row = cursor.fetchone()
        return _with_id(doc_id, row[0]) if row else None

    def query(self, collection: str, predicates: Sequence[Predicate] = ()) -> list[dict[str, Any]]:
        conditions = ["collection = %s"]
        params: list[object] = [collection]
        for predicate in predicates:
            if predicate.op not in ("==", "!="):
                raise ValueError(f"Unsupported operator: {predicate.op!r}")
            sql_op = "=" if predicate.op == "==" else "<>"
            conditions.append(f"coalesce(data -> %s, 'null'::jsonb) {sql_op} %s")
            params.extend([predicate.field, _jsonb(predicate.value)])

        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "select id, data from documents where " + " and ".join(conditions),
                params,
            )
            rows = cursor.fetchall()
        return [_with_id(doc_id, data) for doc_id, data in rows]

    def update_atomic(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "update documents set data = data || %s where collection = %s and id = %s",
                (_jsonb(fields), collection, doc_id),
            )
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")

    def array_union(
        self,
        collection: str,
        doc_id: str,
        field: str,
        values: Iterable[Any],
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        with db_cursor(self.settings) as cursor:
            current = _lock_document(cursor, collection, doc_id)
            current[field] = _merge_union(current.get(field), values)
            current.update(extra or {})
            cursor.execute(
                "insert into documents (collection, id, data) values (%s, %s, %s) "
                "on conflict (collection, id) do update set data = excluded.data",
                (collection, doc_id, _jsonb(current)),
            )


def _lock_document(cursor: Cursor, collection: str, doc_id: str) -> dict[str, Any]:
    # Serialise concurrent unions on the same row; a missing row starts empty.
    cursor.execute(
        "insert into documents (collection, id, data) values (%s, %s, '{}'::jsonb) "
        "on conflict (collection, id) do nothing",
        (collection, doc_id),
    )
    cursor.execute(
        "select data from documents where collection = %s and id = %s for update",
        (collection, doc_id),
    )
    row = cursor.fetchone()
    return dict(row[0]) if row else {}
