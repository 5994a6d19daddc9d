from __future__ import annotations

import asyncio

from lms.services.lookups import (
    courses_for_classes,
    get_user,
    map_roster_ids_to_user_ids,
    resolve_user,
    user_by_email,
)
from lms.store.memory import InMemoryDocumentStore
from tests.conftest import seed_course, seed_user


def test_get_user_rejects_path_like_ids(store: InMemoryDocumentStore) -> None:
    seed_user(store, "u1")
    assert asyncio.run(get_user(store, "u1")) is not None
    assert asyncio.run(get_user(store, "u1/enrollments")) is None
    assert asyncio.run(get_user(store, "")) is None


def test_user_by_email_falls_back_to_lowercase(store: InMemoryDocumentStore) -> None:
    seed_user(store, "u1", email="ana@example.com")
    user = asyncio.run(user_by_email(store, "  Ana@Example.com "))
    assert user is not None
    assert user.id == "u1"


def test_resolve_user_tries_each_identifier(store: InMemoryDocumentStore) -> None:
    seed_user(store, "doc-1", student_id="S-2025-00001")
    seed_user(store, "doc-2", teacherId="T-2025-00001")
    seed_user(store, "doc-3", userId="legacy-3")
    seed_user(store, "doc-4", email="four@example.com")

    def _resolve(key: str) -> str | None:
        user = asyncio.run(resolve_user(store, key))
        return user.id if user else None

    assert _resolve("doc-1") == "doc-1"
    assert _resolve("S-2025-00001") == "doc-1"
    assert _resolve("T-2025-00001") == "doc-2"
    assert _resolve("legacy-3") == "doc-3"
    assert _resolve("four@example.com") == "doc-4"
    assert _resolve("nobody") is None
    assert _resolve("  ") is None


def test_map_roster_ids_resolves_in_roster_order(store: InMemoryDocumentStore) -> None:
    seed_user(store, "u-a", student_id="S-1")
    seed_user(store, "u-b", email="b@example.com")
    seed_user(store, "u-c")
    roster = ["S-1", "ghost", "u-c", "b@example.com", "S-1", "bad/id"]

    mapped = asyncio.run(map_roster_ids_to_user_ids(store, roster))
    assert mapped == ["u-a", "u-c", "u-b"]


def test_map_roster_ids_chunks_large_rosters(store: InMemoryDocumentStore) -> None:
    for i in range(35):
        seed_user(store, f"user-{i}", student_id=f"S-{i:03d}")
    roster = [f"S-{i:03d}" for i in range(35)]

    mapped = asyncio.run(map_roster_ids_to_user_ids(store, roster))
    assert mapped == [f"user-{i}" for i in range(35)]


def test_courses_for_classes_dedupes(store: InMemoryDocumentStore) -> None:
    seed_course(store, "math", classes=("c1", "c2"))
    seed_course(store, "art", title="Art", classes=("c2",))
    seed_course(store, "other", title="Other", classes=("c9",))

    courses = asyncio.run(courses_for_classes(store, ["c1", "c2", "c1"]))
    assert sorted(c.id for c in courses) == ["art", "math"]
    assert asyncio.run(courses_for_classes(store, [])) == []
