"""Shared read paths used by several components.

All of these are plain reads that raise on store failure; the callers
decide whether a failure degrades (aggregates) or propagates (writes).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from lms.models.classroom import Classroom
from lms.models.course import Course
from lms.models.user import User
from lms.services.chunking import gather_chunks, unique
from lms.store.base import DOCUMENT_ID, DocumentStore, Filter, join

logger = logging.getLogger(__name__)

# Roster ids are matched against these, in order.  "email" only applies to
# ids that contain "@".
RESOLUTION_ORDER = (DOCUMENT_ID, "userId", "studentId", "teacherId", "email")


async def get_user(store: DocumentStore, user_id: str) -> User | None:
    if not user_id or "/" in user_id:
        return None
    doc = await store.get(join("users", user_id))
    return User.from_doc(doc) if doc is not None else None


async def get_class(store: DocumentStore, class_id: str) -> Classroom | None:
    if not class_id or "/" in class_id:
        return None
    doc = await store.get(join("classes", class_id))
    return Classroom.from_doc(doc) if doc is not None else None


async def user_by_field(store: DocumentStore, field: str, value: str) -> User | None:
    docs = await store.query("users", [Filter(field, "==", value)], limit=1)
    return User.from_doc(docs[0]) if docs else None


async def user_by_email(store: DocumentStore, email: str) -> User | None:
    email = email.strip()
    user = await user_by_field(store, "email", email)
    if user is None and email != email.lower():
        user = await user_by_field(store, "email", email.lower())
    return user


async def resolve_user(store: DocumentStore, any_id: str) -> User | None:
    """Find a user by document id, userId, studentId, teacherId or email."""
    key = (any_id or "").strip()
    if not key:
        return None
    user = await get_user(store, key)
    if user is not None:
        return user
    for field in ("userId", "studentId", "teacherId"):
        user = await user_by_field(store, field, key)
        if user is not None:
            return user
    if "@" in key:
        return await user_by_email(store, key)
    return None


async def enrolled_class_ids(store: DocumentStore, user_id: str) -> list[str]:
    docs = await store.list_documents(join("users", user_id, "enrollments"))
    return [d.id for d in docs]


async def courses_for_classes(
    store: DocumentStore, class_ids: Iterable[str]
) -> list[Course]:
    """Courses assigned to any of the classes, deduplicated, first-seen order."""
    ids = unique(class_ids)
    if not ids:
        return []

    async def _fetch(batch: list[str]):
        return await store.query(
            "courses", [Filter("assignedClasses", "array-contains-any", batch)]
        )

    seen: set[str] = set()
    courses: list[Course] = []
    for docs in await gather_chunks(ids, _fetch):
        for doc in docs:
            if doc.id not in seen:
                seen.add(doc.id)
                courses.append(Course.from_doc(doc))
    return courses


async def map_roster_ids_to_user_ids(
    store: DocumentStore, roster_ids: Iterable[str]
) -> list[str]:
    """Resolve roster identifiers to user document ids.

    Each pass only queries the ids still unresolved, in chunks.  Ids that
    match nothing are dropped.  The result follows roster order with
    duplicates removed.
    """
    pending = unique(roster_ids)
    resolved: dict[str, str] = {}

    for field in RESOLUTION_ORDER:
        remaining = [rid for rid in pending if rid not in resolved]
        if field == DOCUMENT_ID:
            remaining = [rid for rid in remaining if "/" not in rid]
        elif field == "email":
            remaining = [rid for rid in remaining if "@" in rid]
        if not remaining:
            continue
        wanted = set(remaining)

        async def _fetch(batch: list[str], field: str = field):
            return await store.query("users", [Filter(field, "in", batch)])

        for docs in await gather_chunks(remaining, _fetch):
            for doc in docs:
                key = doc.id if field == DOCUMENT_ID else doc.get(field)
                if key in wanted and key not in resolved:
                    resolved[key] = doc.id

    missing = [rid for rid in pending if rid not in resolved]
    if missing:
        logger.debug("Unresolved roster ids dropped: %s", missing)
    return unique(resolved[rid] for rid in pending if rid in resolved)
