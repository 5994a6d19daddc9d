"""Google Cloud Firestore implementation of the document store contract.

Thin translation layer: paths map to ``client.document`` /
``client.collection``, ``Filter`` maps to ``FieldFilter``, and the
store-neutral sentinels map to their Firestore counterparts.  Firestore
itself provides the transaction retry loop (``async_transactional``).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter

from lms.core.errors import NotFoundError, TransientStoreError, ValidationError
from lms.store.base import (
    DELETE_FIELD,
    DOCUMENT_ID,
    MEMBERSHIP_OPERATORS,
    SERVER_TIMESTAMP,
    Document,
    Filter,
    Increment,
    Transaction,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# The Python client spells the array operators with underscores.
_OPS = {
    "array-contains": "array_contains",
    "array-contains-any": "array_contains_any",
}

_TRANSIENT = (
    gexc.Aborted,
    gexc.DeadlineExceeded,
    gexc.ServiceUnavailable,
    gexc.InternalServerError,
)


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except _TRANSIENT as e:
        logger.warning("Firestore call failed transiently: %s", e)
        raise TransientStoreError(str(e)) from e


def _encode(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            out[key] = firestore.SERVER_TIMESTAMP
        elif value is DELETE_FIELD:
            out[key] = firestore.DELETE_FIELD
        elif isinstance(value, Increment):
            out[key] = firestore.Increment(value.amount)
        elif isinstance(value, dict):
            out[key] = _encode(value)
        else:
            out[key] = value
    return out


def _to_document(snap) -> Document | None:
    if not snap.exists:
        return None
    return Document(id=snap.id, path=snap.reference.path, data=snap.to_dict() or {})


class FirestoreDocumentStore:
    def __init__(self, client: firestore.AsyncClient, *, max_attempts: int = 5) -> None:
        self._client = client
        self._max_attempts = max_attempts

    def _build_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ):
        col = self._client.collection(collection)
        query = col
        for f in filters:
            value = f.value
            if f.field == DOCUMENT_ID:
                # Document-id filters compare references, not strings.
                if f.op in MEMBERSHIP_OPERATORS:
                    value = [col.document(v) for v in value]
                else:
                    value = col.document(value)
            query = query.where(filter=FieldFilter(f.field, _OPS.get(f.op, f.op), value))
        if order_by is not None:
            direction = (
                firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    async def get(self, path: str) -> Document | None:
        with _translate_errors():
            return _to_document(await self._client.document(path).get())

    async def list_documents(self, collection: str) -> list[Document]:
        with _translate_errors():
            return [
                doc
                async for snap in self._client.collection(collection).stream()
                if (doc := _to_document(snap)) is not None
            ]

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = self._build_query(collection, filters, order_by, descending, limit)
        with _translate_errors():
            return [
                doc
                async for snap in query.stream()
                if (doc := _to_document(snap)) is not None
            ]

    async def set(
        self, path: str, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        with _translate_errors():
            await self._client.document(path).set(_encode(data), merge=merge)

    async def update(self, path: str, data: dict[str, Any]) -> None:
        try:
            with _translate_errors():
                await self._client.document(path).update(_encode(data))
        except gexc.NotFound:
            raise NotFoundError("document", path) from None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        with _translate_errors():
            _, ref = await self._client.collection(collection).add(_encode(data))
        return ref.id

    async def delete(self, path: str) -> None:
        with _translate_errors():
            await self._client.document(path).delete()

    async def run_transaction(
        self, fn: Callable[[Transaction], Awaitable[T]]
    ) -> T:
        @firestore.async_transactional
        async def _run(tx: firestore.AsyncTransaction) -> T:
            return await fn(_FirestoreTransaction(self, tx))

        try:
            with _translate_errors():
                return await _run(self._client.transaction(max_attempts=self._max_attempts))
        except ValueError as e:
            # The client reports an exhausted retry budget as a bare ValueError.
            if isinstance(e, ValidationError) or "Failed to commit transaction" not in str(e):
                raise
            logger.warning("Transaction gave up: %s", e)
            raise TransientStoreError(str(e)) from e


class _FirestoreTransaction:
    def __init__(self, store: FirestoreDocumentStore, tx: firestore.AsyncTransaction) -> None:
        self._store = store
        self._client = store._client
        self._tx = tx

    async def get(self, path: str) -> Document | None:
        return _to_document(await self._client.document(path).get(transaction=self._tx))

    async def list_documents(self, collection: str) -> list[Document]:
        return [
            doc
            async for snap in self._client.collection(collection).stream(
                transaction=self._tx
            )
            if (doc := _to_document(snap)) is not None
        ]

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        query = self._store._build_query(collection, filters, order_by, descending, limit)
        return [
            doc
            async for snap in query.stream(transaction=self._tx)
            if (doc := _to_document(snap)) is not None
        ]

    def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self._tx.set(self._client.document(path), _encode(data), merge=merge)

    def update(self, path: str, data: dict[str, Any]) -> None:
        self._tx.update(self._client.document(path), _encode(data))

    def delete(self, path: str) -> None:
        self._tx.delete(self._client.document(path))
