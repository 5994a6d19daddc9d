"""Document store contract.

Every component talks to persistence through ``DocumentStore``.  Two
implementations exist: ``InMemoryDocumentStore`` (dev, tests) and
``FirestoreDocumentStore`` (prod).  Components receive the store through
their constructor; nothing imports a global store handle.

PATHS
-----
Documents are addressed by slash-separated paths with an even number of
segments ("users/u1", "users/u1/quizAttempts/q7"); collections by paths
with an odd number ("users", "users/u1/quizAttempts").

QUERIES
-------
Filters combine with AND.  The membership operators ("in",
"array-contains-any") accept at most ``MEMBERSHIP_QUERY_LIMIT`` values,
so callers split larger id sets with lms.services.chunking first.
Ordering by a field drops documents that do not have that field.

TRANSACTIONS
------------
``run_transaction(fn)`` calls ``fn(tx)`` with a ``Transaction``.  All
reads must happen before the first write.  Writes are buffered and
commit together; on a conflicting concurrent write the store re-runs
``fn`` from scratch, and raises ``TransientStoreError`` once its retry
budget is spent.  ``fn`` must therefore be free of side effects other
than the writes it stages on ``tx``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

# Filter on the document id instead of a field.
DOCUMENT_ID = "__name__"

MEMBERSHIP_QUERY_LIMIT = 10
MEMBERSHIP_OPERATORS = frozenset({"in", "array-contains-any"})
OPERATORS = frozenset(
    {"==", "!=", "<", "<=", ">", ">=", "array-contains"} | MEMBERSHIP_OPERATORS
)


class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


# Replaced by the commit time of the write that carries it.
SERVER_TIMESTAMP: Any = _Sentinel("SERVER_TIMESTAMP")

# Removes the field in a merge/update write.
DELETE_FIELD: Any = _Sentinel("DELETE_FIELD")


@dataclass(frozen=True, slots=True)
class Increment:
    """Add ``amount`` to the stored number (missing counts as 0)."""

    amount: int | float = 1


@dataclass(frozen=True, slots=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"unsupported operator {self.op!r}")
        if self.op in MEMBERSHIP_OPERATORS:
            if not isinstance(self.value, (list, tuple)):
                raise ValueError(f"{self.op!r} needs a list of values")
            if not self.value:
                raise ValueError(f"{self.op!r} needs at least one value")
            if len(self.value) > MEMBERSHIP_QUERY_LIMIT:
                raise ValueError(
                    f"{self.op!r} accepts at most {MEMBERSHIP_QUERY_LIMIT} values "
                    f"(got {len(self.value)})"
                )


@dataclass(frozen=True, slots=True)
class Document:
    id: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts)


def parent_of(path: str) -> str:
    return path.rsplit("/", 1)[0]


def id_of(path: str) -> str:
    return path.rsplit("/", 1)[-1]


@runtime_checkable
class Transaction(Protocol):
    async def get(self, path: str) -> Document | None: ...

    async def list_documents(self, collection: str) -> list[Document]: ...

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]: ...

    def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None: ...

    def update(self, path: str, data: dict[str, Any]) -> None: ...

    def delete(self, path: str) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    async def get(self, path: str) -> Document | None:
        """Fetch one document.  Returns None when it does not exist."""
        ...

    async def list_documents(self, collection: str) -> list[Document]:
        """Every document directly inside ``collection``."""
        ...

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]: ...

    async def set(
        self, path: str, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...

    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Patch fields of an existing document.  NotFoundError if missing."""
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        ...

    async def delete(self, path: str) -> None: ...

    async def run_transaction(
        self, fn: Callable[[Transaction], Awaitable[T]]
    ) -> T: ...
