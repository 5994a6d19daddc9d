from __future__ import annotations

import asyncio

import pytest

from lms.core.errors import ClassArchivedError, NotFoundError
from lms.services.enrollment import EnrollmentCoordinator
from lms.store.memory import InMemoryDocumentStore
from tests.conftest import NOW, seed_class, seed_user


@pytest.fixture
def coordinator(store: InMemoryDocumentStore) -> EnrollmentCoordinator:
    seed_user(store, "u1", student_id="S-2025-00001", name="Ana Reyes")
    seed_user(store, "u2", student_id="S-2025-00002", name="Ben Cruz")
    seed_class(store, "C1", name="Grade 7 - Rizal", teacher_id="teacher-1")
    return EnrollmentCoordinator(store)


def test_enroll_writes_roster_count_and_mirror(
    store: InMemoryDocumentStore, coordinator: EnrollmentCoordinator
) -> None:
    result = asyncio.run(coordinator.enroll("C1", "S-2025-00001"))

    assert result.already_enrolled is False
    assert result.user_id == "u1"
    roster = store.peek("classes/C1/roster/S-2025-00001")
    assert roster is not None
    assert roster["fullName"] == "Ana Reyes"
    assert roster["enrolledAt"] == NOW
    assert store.peek("classes/C1")["students"] == 1  # type: ignore[index]
    mirror = store.peek("users/u1/enrollments/C1")
    assert mirror is not None
    assert mirror["name"] == "Grade 7 - Rizal"
    assert mirror["teacherId"] == "teacher-1"


def test_enroll_twice_is_idempotent(
    store: InMemoryDocumentStore, coordinator: EnrollmentCoordinator
) -> None:
    first = asyncio.run(coordinator.enroll("C1", "S-2025-00001"))
    second = asyncio.run(coordinator.enroll("C1", "S-2025-00001"))

    assert first.already_enrolled is False
    assert second.already_enrolled is True
    assert store.peek("classes/C1")["students"] == 1  # type: ignore[index]


def test_concurrent_duplicate_enrolls_count_once() -> None:
    store = InMemoryDocumentStore(max_attempts=20)
    seed_user(store, "u1", student_id="S-1")
    seed_class(store, "C1")
    coordinator = EnrollmentCoordinator(store)

    async def _main():
        return await asyncio.gather(*(coordinator.enroll("C1", "S-1") for _ in range(5)))

    results = asyncio.run(_main())
    assert sum(not r.already_enrolled for r in results) == 1
    assert store.peek("classes/C1")["students"] == 1  # type: ignore[index]


def test_enroll_unknown_student(coordinator: EnrollmentCoordinator) -> None:
    with pytest.raises(NotFoundError) as exc:
        asyncio.run(coordinator.enroll("C1", "S-9999-99999"))
    assert exc.value.kind == "student"


def test_enroll_blank_or_path_student_id(coordinator: EnrollmentCoordinator) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(coordinator.enroll("C1", "   "))
    with pytest.raises(NotFoundError):
        asyncio.run(coordinator.enroll("C1", "S-1/roster"))


def test_enroll_unknown_class(coordinator: EnrollmentCoordinator) -> None:
    with pytest.raises(NotFoundError) as exc:
        asyncio.run(coordinator.enroll("NOPE", "S-2025-00001"))
    assert exc.value.kind == "class"


def test_enroll_archived_class_rejected(
    store: InMemoryDocumentStore, coordinator: EnrollmentCoordinator
) -> None:
    seed_class(store, "OLD", archived=True)
    with pytest.raises(ClassArchivedError):
        asyncio.run(coordinator.enroll("OLD", "S-2025-00001"))
    assert store.peek("classes/OLD/roster/S-2025-00001") is None


def test_unenroll_removes_entry_and_decrements(
    store: InMemoryDocumentStore, coordinator: EnrollmentCoordinator
) -> None:
    asyncio.run(coordinator.enroll("C1", "S-2025-00001"))
    asyncio.run(coordinator.enroll("C1", "S-2025-00002"))

    assert asyncio.run(coordinator.unenroll("C1", "S-2025-00001")) is True
    assert store.peek("classes/C1/roster/S-2025-00001") is None
    assert store.peek("users/u1/enrollments/C1") is None
    assert store.peek("classes/C1")["students"] == 1  # type: ignore[index]

    # Removing again changes nothing.
    assert asyncio.run(coordinator.unenroll("C1", "S-2025-00001")) is False
    assert store.peek("classes/C1")["students"] == 1  # type: ignore[index]


def test_bulk_enroll_reports_each_id(
    store: InMemoryDocumentStore, coordinator: EnrollmentCoordinator
) -> None:
    asyncio.run(coordinator.enroll("C1", "S-2025-00002"))

    report = asyncio.run(
        coordinator.bulk_enroll(
            "C1", ["S-2025-00001", " S-2025-00002 ", "S-0000-00000", "S-2025-00001", ""]
        )
    )

    assert report.total == 3
    assert report.enrolled == 1
    assert report.already_enrolled == 1
    assert report.not_found == 1
    assert report.errors == 0
    assert [(d.student_id, d.status) for d in report.details] == [
        ("S-2025-00001", "enrolled"),
        ("S-2025-00002", "already"),
        ("S-0000-00000", "not_found"),
    ]
    assert store.peek("classes/C1")["students"] == 2  # type: ignore[index]


def test_bulk_enroll_archived_class_aborts(
    store: InMemoryDocumentStore, coordinator: EnrollmentCoordinator
) -> None:
    seed_class(store, "OLD", archived=True)
    with pytest.raises(ClassArchivedError):
        asyncio.run(coordinator.bulk_enroll("OLD", ["S-2025-00001"]))


def test_bulk_enroll_records_unexpected_errors(
    store: InMemoryDocumentStore,
    coordinator: EnrollmentCoordinator,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = coordinator._link

    async def _flaky(classroom, user, student_id):
        if student_id == "S-2025-00002":
            raise RuntimeError("write failed")
        return await original(classroom, user, student_id)

    monkeypatch.setattr(coordinator, "_link", _flaky)
    report = asyncio.run(coordinator.bulk_enroll("C1", ["S-2025-00001", "S-2025-00002"]))

    assert report.enrolled == 1
    assert report.errors == 1
    assert report.details[1].error == "RuntimeError"
