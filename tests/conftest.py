from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from lms.api.dependencies import document_store
from lms.main import app
from lms.services.cache import cache_service
from lms.store.memory import InMemoryDocumentStore

# Ensure repo root is on sys.path so `import lms` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# A fixed "now" for clocks: Wednesday 2025-03-12, mid-morning UTC.
NOW = datetime(2025, 3, 12, 10, 30, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_document_store() -> None:
    """The app's in-memory store is process-wide; empty it between tests."""
    if isinstance(document_store, InMemoryDocumentStore):
        document_store.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def app_store() -> InMemoryDocumentStore:
    """The store behind the running app, for seeding API tests."""
    assert isinstance(document_store, InMemoryDocumentStore)
    return document_store


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """A private store whose server timestamps read as NOW."""
    return InMemoryDocumentStore(clock=lambda: NOW)


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def seed_user(
    store: InMemoryDocumentStore,
    user_id: str,
    *,
    student_id: str | None = None,
    email: str | None = None,
    name: str | None = None,
    **fields: Any,
) -> None:
    data: dict[str, Any] = {"email": email or f"{user_id}@example.com", **fields}
    if name:
        data["fullName"] = name
    if student_id:
        data["studentId"] = student_id
        data.setdefault("isStudent", True)
    store.put(f"users/{user_id}", data)


def seed_class(
    store: InMemoryDocumentStore,
    class_id: str,
    *,
    teacher_id: str = "teacher-1",
    name: str | None = None,
    students: int = 0,
    archived: bool = False,
    created_at: datetime = NOW,
) -> None:
    store.put(
        f"classes/{class_id}",
        {
            "name": name or class_id,
            "teacherId": teacher_id,
            "students": students,
            "archived": archived,
            "createdAt": created_at,
        },
    )


def seed_course(
    store: InMemoryDocumentStore,
    course_id: str,
    *,
    title: str = "Mathematics",
    classes: tuple[str, ...] = (),
    uploaded_by: str = "teacher-1",
) -> None:
    store.put(
        f"courses/{course_id}",
        {"title": title, "assignedClasses": list(classes), "uploadedBy": uploaded_by},
    )


def seed_module(
    store: InMemoryDocumentStore, module_id: str, *, course_id: str, number: int = 1
) -> None:
    store.put(
        f"modules/{module_id}",
        {"courseId": course_id, "moduleNumber": number, "title": f"Module {number}"},
    )


def seed_quiz(
    store: InMemoryDocumentStore,
    quiz_id: str,
    *,
    course_id: str = "course-1",
    module_id: str | None = "module-1",
    attempts_allowed: int | None = None,
    passing_percent: int | None = None,
) -> None:
    data: dict[str, Any] = {
        "courseId": course_id,
        "moduleId": module_id,
        "title": quiz_id,
        "attemptsAllowed": attempts_allowed,
    }
    if passing_percent is not None:
        data["passingPercent"] = passing_percent
    store.put(f"quizzes/{quiz_id}", data)


def enroll_directly(
    store: InMemoryDocumentStore, class_id: str, student_id: str, user_id: str
) -> None:
    """Roster entry plus mirror, without going through the coordinator."""
    store.put(f"classes/{class_id}/roster/{student_id}", {"studentId": student_id})
    store.put(f"users/{user_id}/enrollments/{class_id}", {"classId": class_id})
