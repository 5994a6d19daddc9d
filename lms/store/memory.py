"""In-memory document store for tests and local dev (no Firestore needed).

Transactions use optimistic concurrency: every document and every
collection carries a version number that is bumped on each write.  A
transaction records the versions it read; at commit it checks that none
of them moved and then applies its buffered writes in one synchronous
step, which nothing else on the event loop can interleave with.  On a
conflict the transaction function is re-run, up to ``max_attempts``.

Collection versions make a transaction that listed or queried a
collection conflict with a concurrent insert into it, so a summary
recomputed from "all attempts" can never miss an attempt appended in
between.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from lms.core.errors import NotFoundError, TransientStoreError
from lms.core.metrics import STORE_TRANSACTION_RETRIES
from lms.store.base import (
    DELETE_FIELD,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Document,
    Filter,
    Increment,
    Transaction,
    id_of,
    join,
    parent_of,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _field_value(doc: Document, name: str) -> tuple[bool, Any]:
    if name == DOCUMENT_ID:
        return True, doc.id
    if name in doc.data:
        return True, doc.data[name]
    return False, None


def _compare(op: str, left: Any, right: Any) -> bool:
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right
    except TypeError:
        # Values of different types never match a range filter.
        return False


def _matches(doc: Document, f: Filter) -> bool:
    present, value = _field_value(doc, f.field)
    if not present:
        return False
    if f.op == "==":
        return value == f.value
    if f.op == "!=":
        return value != f.value
    if f.op == "in":
        return value in f.value
    if f.op == "array-contains":
        return isinstance(value, list) and f.value in value
    if f.op == "array-contains-any":
        return isinstance(value, list) and any(v in value for v in f.value)
    return _compare(f.op, value, f.value)


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    if isinstance(value, str):
        return (4, value)
    return (5, repr(value))


class _Write:
    __slots__ = ("kind", "path", "data", "merge")

    def __init__(
        self, kind: str, path: str, data: dict[str, Any] | None, merge: bool
    ) -> None:
        self.kind = kind
        self.path = path
        self.data = data
        self.merge = merge


class InMemoryDocumentStore:
    def __init__(self, *, max_attempts: int = 5, clock: Clock | None = None) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._docs: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}
        self._collection_versions: dict[str, int] = {}
        self._max_attempts = max_attempts
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Test helpers (synchronous, no sentinels)
    # ------------------------------------------------------------------

    def put(self, path: str, data: dict[str, Any]) -> None:
        """Seed a document directly."""
        self._docs[path] = copy.deepcopy(data)
        self._bump(path)

    def peek(self, path: str) -> dict[str, Any] | None:
        data = self._docs.get(path)
        return copy.deepcopy(data) if data is not None else None

    def clear(self) -> None:
        self._docs.clear()
        self._versions.clear()
        self._collection_versions.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _snapshot(self, path: str) -> Document | None:
        data = self._docs.get(path)
        if data is None:
            return None
        return Document(id=id_of(path), path=path, data=copy.deepcopy(data))

    def _children(self, collection: str) -> list[Document]:
        collection = collection.strip("/")
        return [
            Document(id=id_of(p), path=p, data=copy.deepcopy(d))
            for p, d in self._docs.items()
            if parent_of(p) == collection
        ]

    def _run_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[Document]:
        docs = [d for d in self._children(collection) if all(_matches(d, f) for f in filters)]
        if order_by is not None:
            docs = [d for d in docs if _field_value(d, order_by)[0]]
            docs.sort(
                key=lambda d: _sort_key(_field_value(d, order_by)[1]),
                reverse=descending,
            )
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def get(self, path: str) -> Document | None:
        return self._snapshot(path)

    async def list_documents(self, collection: str) -> list[Document]:
        return self._children(collection)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        return self._run_query(collection, filters, order_by, descending, limit)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _bump(self, path: str) -> None:
        self._versions[path] = self._versions.get(path, 0) + 1
        collection = parent_of(path)
        self._collection_versions[collection] = (
            self._collection_versions.get(collection, 0) + 1
        )

    def _resolve(
        self, data: dict[str, Any], existing: dict[str, Any], now: datetime
    ) -> dict[str, Any]:
        out = dict(existing)
        for key, value in data.items():
            if value is DELETE_FIELD:
                out.pop(key, None)
            elif value is SERVER_TIMESTAMP:
                out[key] = now
            elif isinstance(value, Increment):
                current = existing.get(key)
                base = current if isinstance(current, (int, float)) else 0
                out[key] = base + value.amount
            elif isinstance(value, dict):
                nested = existing.get(key)
                out[key] = self._resolve(
                    value, nested if isinstance(nested, dict) else {}, now
                )
            else:
                out[key] = copy.deepcopy(value)
        return out

    def _apply(self, write: _Write, now: datetime) -> None:
        if write.kind == "delete":
            if write.path in self._docs:
                del self._docs[write.path]
                self._bump(write.path)
            return
        assert write.data is not None
        existing = self._docs.get(write.path)
        if write.kind == "update":
            if existing is None:
                raise NotFoundError("document", write.path)
            self._docs[write.path] = self._resolve(write.data, existing, now)
        elif write.merge and existing is not None:
            self._docs[write.path] = self._resolve(write.data, existing, now)
        else:
            self._docs[write.path] = self._resolve(write.data, {}, now)
        self._bump(write.path)

    async def set(
        self, path: str, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        self._apply(_Write("set", path, data, merge), self._clock())

    async def update(self, path: str, data: dict[str, Any]) -> None:
        self._apply(_Write("update", path, data, False), self._clock())

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._apply(_Write("set", join(collection, doc_id), data, False), self._clock())
        return doc_id

    async def delete(self, path: str) -> None:
        self._apply(_Write("delete", path, None, False), self._clock())

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _commit(self, tx: _InMemoryTransaction) -> bool:
        for path, version in tx.read_versions.items():
            if self._versions.get(path, 0) != version:
                return False
        for collection, version in tx.collection_versions.items():
            if self._collection_versions.get(collection, 0) != version:
                return False
        # An update against a missing document fails the whole commit.
        staged = set(self._docs)
        for write in tx.writes:
            if write.kind == "update" and write.path not in staged:
                raise NotFoundError("document", write.path)
            if write.kind == "delete":
                staged.discard(write.path)
            else:
                staged.add(write.path)
        now = self._clock()
        for write in tx.writes:
            self._apply(write, now)
        return True

    async def run_transaction(
        self, fn: Callable[[Transaction], Awaitable[T]]
    ) -> T:
        for attempt in range(1, self._max_attempts + 1):
            tx = _InMemoryTransaction(self)
            result = await fn(tx)
            if self._commit(tx):
                return result
            STORE_TRANSACTION_RETRIES.inc()
            logger.debug("Transaction conflict, retrying attempt=%d", attempt)
        logger.warning(
            "Transaction gave up after %d conflicting attempts", self._max_attempts
        )
        raise TransientStoreError(
            f"transaction failed after {self._max_attempts} attempts"
        )


class _InMemoryTransaction:
    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self.read_versions: dict[str, int] = {}
        self.collection_versions: dict[str, int] = {}
        self.writes: list[_Write] = []

    def _before_read(self) -> None:
        if self.writes:
            raise RuntimeError("transaction reads must happen before writes")

    def _track_collection(self, collection: str) -> None:
        collection = collection.strip("/")
        self.collection_versions.setdefault(
            collection, self._store._collection_versions.get(collection, 0)
        )

    async def get(self, path: str) -> Document | None:
        self._before_read()
        self.read_versions.setdefault(path, self._store._versions.get(path, 0))
        doc = self._store._snapshot(path)
        # Yield so concurrent transactions interleave the way network I/O would.
        await asyncio.sleep(0)
        return doc

    async def list_documents(self, collection: str) -> list[Document]:
        self._before_read()
        self._track_collection(collection)
        docs = self._store._children(collection)
        await asyncio.sleep(0)
        return docs

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        self._before_read()
        self._track_collection(collection)
        docs = self._store._run_query(collection, filters, order_by, descending, limit)
        await asyncio.sleep(0)
        return docs

    def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self.writes.append(_Write("set", path, data, merge))

    def update(self, path: str, data: dict[str, Any]) -> None:
        self.writes.append(_Write("update", path, data, False))

    def delete(self, path: str) -> None:
        self.writes.append(_Write("delete", path, None, False))
