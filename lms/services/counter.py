"""Per-(role, year) sequence counter for human-readable ids.

``counters/{role}-{year}`` holds ``seq``.  Each call reads it, adds one
and writes it back inside a single-document transaction, so concurrent
callers for the same role and year never receive the same number: the
loser of a write conflict is re-run by the store and reads the winner's
value.  Ids look like ``S-2025-00001``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from lms.store.base import SERVER_TIMESTAMP, DocumentStore, Transaction, join

logger = logging.getLogger(__name__)

ROLE_PREFIXES = {"student": "S", "teacher": "T"}
DEFAULT_PREFIX = "U"


def prefix_for(role: str) -> str:
    return ROLE_PREFIXES.get(role, DEFAULT_PREFIX)


def format_role_id(prefix: str, year: int, seq: int) -> str:
    return f"{prefix}-{year}-{seq:05d}"


class SequenceCounter:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    async def next_sequence(self, role: str, year: int) -> int:
        """Return the next value for (role, year), starting at 1.

        Raises TransientStoreError when the store's retries run out.
        """
        path = join("counters", f"{role}-{year}")

        async def _bump(tx: Transaction) -> int:
            doc = await tx.get(path)
            current = doc.get("seq") if doc is not None else None
            seq = (current if isinstance(current, int) else 0) + 1
            tx.set(
                path,
                {
                    "seq": seq,
                    "prefix": prefix_for(role),
                    "year": year,
                    "updatedAt": SERVER_TIMESTAMP,
                },
                merge=True,
            )
            return seq

        seq = await self._store.run_transaction(_bump)
        logger.debug("Counter %s-%d advanced to %d", role, year, seq)
        return seq

    async def next_role_id(self, role: str, year: int | None = None) -> str:
        year = year if year is not None else self._clock().year
        seq = await self.next_sequence(role, year)
        return format_role_id(prefix_for(role), year, seq)
