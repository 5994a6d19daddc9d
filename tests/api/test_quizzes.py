"""Quiz attempt endpoints, end to end through the in-memory store."""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from lms.store.memory import InMemoryDocumentStore
from tests.conftest import seed_class, seed_course, seed_module, seed_quiz, seed_user


def _submit(client: TestClient, quiz_id: str = "q1", score: float = 8, total: float = 10, **extra):
    return client.post(
        "/submit-quiz-score",
        json={"email": "ana@example.com", "quizId": quiz_id, "score": score, "total": total, **extra},
    )


def _seed(store: InMemoryDocumentStore) -> None:
    seed_user(store, "u1", student_id="S-2025-00001", email="ana@example.com", name="Ana")
    seed_course(store, "c1", classes=("C1",))
    seed_module(store, "m1", course_id="c1")
    seed_quiz(store, "q1", course_id="c1", module_id="m1", passing_percent=60)
    seed_quiz(store, "q2", course_id="c1", module_id=None, attempts_allowed=1)


def test_enroll_then_pass_a_quiz(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    """A new student joins a class and passes the module quiz on the first try."""
    _seed(app_store)
    seed_class(app_store, "C1")

    enrolled = client.post("/api/classes/C1/students", json={"studentId": "S-2025-00001"})
    assert enrolled.json()["alreadyEnrolled"] is False
    assert app_store.peek("classes/C1")["students"] == 1  # type: ignore[index]

    resp = _submit(client, timeTakenSeconds=95)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["percent"] == 80
    assert body["bestPercent"] == 80
    assert body["moduleCompleted"] is True
    assert body["attempts"] == {"used": 1, "allowed": None, "left": None}
    assert app_store.peek(f"users/u1/quizAttempts/q1/attempts/{body['attemptId']}") is not None
    assert app_store.peek("users/u1/completedModules/m1")["percent"] == 80  # type: ignore[index]
    assert app_store.peek("users/u1")["averageQuizScore"] == 80  # type: ignore[index]


def test_email_lookup_is_case_insensitive(
    client: TestClient, app_store: InMemoryDocumentStore
) -> None:
    _seed(app_store)
    resp = client.post(
        "/submit-quiz-score",
        json={"email": "ANA@example.com", "quizId": "q1", "score": 5, "total": 10},
    )
    assert resp.status_code == 200
    assert resp.json()["moduleCompleted"] is False


def test_limit_reached_is_403_with_usage(
    client: TestClient, app_store: InMemoryDocumentStore
) -> None:
    _seed(app_store)
    before = REGISTRY.get_sample_value(
        "quiz_attempts_total", {"outcome": "limit_reached"}
    ) or 0.0

    assert _submit(client, "q2").json()["attempts"] == {"used": 1, "allowed": 1, "left": 0}
    blocked = _submit(client, "q2")

    assert blocked.status_code == 403
    detail = blocked.json()["detail"]
    assert detail["attempts"] == {"used": 1, "allowed": 1, "left": 0}
    assert "No attempts left" in detail["message"]
    after = REGISTRY.get_sample_value("quiz_attempts_total", {"outcome": "limit_reached"})
    assert after == before + 1


def test_submit_rejections(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    unknown_user = client.post(
        "/submit-quiz-score",
        json={"email": "nobody@example.com", "quizId": "q1", "score": 1, "total": 1},
    )
    assert unknown_user.status_code == 404
    assert unknown_user.json()["detail"] == "User not found."

    assert _submit(client, "missing").status_code == 404
    assert _submit(client, score=-1).status_code == 400
    assert client.post("/submit-quiz-score", json={"email": "ana@example.com"}).status_code == 422


def test_attempt_status(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)
    _submit(client, "q2")

    resp = client.get("/api/students/u1/quiz-attempts", params={"quizIds": "q1,q2,,unknown"})

    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "q1": {"used": 0, "allowed": None, "left": None, "lock": False},
        "q2": {"used": 1, "allowed": 1, "left": 0, "lock": True},
        "unknown": {"used": 0, "allowed": None, "left": None, "lock": False},
    }


def test_quiz_results(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)
    _submit(client, score=4)
    _submit(client, score=9, reason="retake")

    resp = client.get("/api/students/u1/quiz-results", params={"quizId": "q1"})

    body = resp.json()
    assert [a["attempt"] for a in body["attempts"]] == [1, 2]
    assert body["best"]["percent"] == 90
    assert body["latest"]["reason"] == "retake"

    assert client.get("/api/students/u1/quiz-results").status_code == 400
    empty = client.get("/api/students/u1/quiz-results", params={"quizId": "q2"}).json()
    assert (empty["attempts"], empty["best"], empty["latest"]) == ([], None, None)
