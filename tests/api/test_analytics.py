from __future__ import annotations

from fastapi.testclient import TestClient

from lms.store.memory import InMemoryDocumentStore
from tests.conftest import (
    enroll_directly,
    seed_class,
    seed_course,
    seed_module,
    seed_quiz,
    seed_user,
)


def _seed(store: InMemoryDocumentStore) -> None:
    seed_class(store, "C1", teacher_id="t1", name="Grade 7", students=2)
    seed_course(store, "math", classes=("C1",), uploaded_by="t1")
    seed_module(store, "m1", course_id="math", number=1)
    seed_module(store, "m2", course_id="math", number=2)
    seed_user(store, "u1", student_id="S-1", name="Ana", averageQuizScore=88)
    seed_user(store, "u2", student_id="S-2", name="Ben", averageQuizScore=40)
    enroll_directly(store, "C1", "S-1", "u1")
    enroll_directly(store, "C1", "S-2", "u2")
    for module_id in ("m1", "m2"):
        store.put(
            f"users/u1/completedModules/{module_id}",
            {"moduleId": module_id, "courseId": "math"},
        )


def test_analytics_json(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    resp = client.get("/api/teacher/analytics", params={"teacherId": "t1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["gradeDistribution"]["labels"] == ["0-59", "60-69", "70-79", "80-89", "90-100"]
    assert body["gradeDistribution"]["datasets"] == [{"label": "Students", "data": [1, 0, 0, 1, 0]}]
    assert body["completionRate"] == {
        "labels": ["Grade 7"],
        "datasets": [{"label": "% Completion", "data": [50]}],
    }
    rows = {r["studentId"]: r for r in body["atRisk"]}
    assert rows["S-1"]["status"] == "On Track"
    assert rows["S-1"]["modulesCompleted"] == 2
    assert rows["S-2"]["status"] == "At Risk"
    assert body["summary"] == {"avgScore": 64, "overallCompletion": 50, "totalStudents": 2}


def test_analytics_requires_teacher(client: TestClient) -> None:
    assert client.get("/api/teacher/analytics").status_code == 400
    assert client.get("/api/teacher/analytics/csv", params={"teacherId": " "}).status_code == 400


def test_analytics_csv(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    resp = client.get("/api/teacher/analytics/csv", params={"teacherId": "t1", "classId": "C1"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert (
        resp.headers["content-disposition"]
        == 'attachment; filename="teacher_analytics_t1.csv"'
    )
    lines = resp.text.splitlines()
    assert len(lines) == 3
    assert lines[1] == "Ana,S-1,88,2,2,0,On Track"


def test_quiz_analytics_json(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)
    seed_quiz(app_store, "q1", course_id="math", module_id="m1")
    app_store.put("users/u1/quizAttempts/q1/attempts/a1", {"score": 8, "total": 10})

    resp = client.get("/api/teacher/quiz-analytics", params={"teacherId": "t1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["byQuiz"] == {"labels": ["q1"], "avgScores": [80], "attempts": [1]}
    assert body["summary"] == {
        "modulesCompleted": 2,
        "totalModules": 4,
        "modulesCompletedPct": 50,
        "totalQuizzes": 1,
        "averageQuizScore": 40,
        "passRate": 50,
    }
    ana, ben = body["progress"]
    assert ana == {
        "className": "Grade 7",
        "name": "Ana",
        "studentId": "S-1",
        "onTimePct": 0,
        "modulesCompleted": 2,
        "totalModules": 2,
        "status": "On Track",
        "avgQuizScore": 80,
        "quizzesTaken": 1,
        "totalQuizzes": 1,
    }
    assert (ben["name"], ben["quizzesTaken"], ben["status"]) == ("Ben", 0, "At Risk")


def test_quiz_analytics_csv(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    resp = client.get(
        "/api/teacher/quiz-analytics/csv", params={"teacherId": "t1", "classId": "C1"}
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert (
        resp.headers["content-disposition"]
        == 'attachment; filename="quiz_analytics_t1_C1.csv"'
    )
    lines = resp.text.splitlines()
    assert lines[0] == "Summary"
    assert lines[8] == "Grade 7,Ana,S-1,0,0,0,0,2,2,At Risk"


def test_assignment_analytics_without_assignments(
    client: TestClient, app_store: InMemoryDocumentStore
) -> None:
    _seed(app_store)

    resp = client.get("/api/teacher/assignment-analytics", params={"teacherId": "t1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["byAssignment"] == {
        "labels": ["No assignments"],
        "avgScores": [0],
        "submissions": [0],
    }
    assert body["summary"]["totalAssignments"] == 0
    assert [r["assignmentsSubmitted"] for r in body["progress"]] == [0, 0]


def test_assignment_analytics_csv(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)
    app_store.put("assignments/as1", {"courseId": "math", "title": "Essay", "points": 10})
    app_store.put("assignments/as1/submissions/S-2", {"grade": 9})

    resp = client.get("/api/teacher/assignment-analytics/csv", params={"teacherId": "t1"})

    assert resp.status_code == 200
    assert (
        resp.headers["content-disposition"]
        == 'attachment; filename="assignment_analytics_t1.csv"'
    )
    lines = resp.text.splitlines()
    assert lines[1] == "Total Assignments,1"
    assert lines[9] == "Grade 7,Ben,S-2,90,1,1,0,0,2,At Risk"


def test_reports_require_teacher(client: TestClient) -> None:
    assert client.get("/api/teacher/quiz-analytics").status_code == 400
    assert client.get("/api/teacher/assignment-analytics/csv").status_code == 400
