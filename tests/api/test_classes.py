"""Roster endpoints: single enroll/unenroll and spreadsheet upload."""

from __future__ import annotations

import io

from fastapi.testclient import TestClient
from openpyxl import Workbook

from lms.store.memory import InMemoryDocumentStore
from tests.conftest import seed_class, seed_user


def _seed(store: InMemoryDocumentStore) -> None:
    seed_class(store, "C1")
    seed_class(store, "OLD", archived=True)
    seed_user(store, "u1", student_id="S-2025-00001", name="Ana")
    seed_user(store, "u2", student_id="S-2025-00002", name="Ben")


def test_enroll_then_repeat(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    first = client.post("/api/classes/C1/students", json={"studentId": "S-2025-00001"})
    assert first.status_code == 200
    assert first.json() == {"success": True, "alreadyEnrolled": False}

    again = client.post("/api/classes/C1/students", json={"studentId": "S-2025-00001"})
    assert again.json() == {"success": True, "alreadyEnrolled": True}

    assert app_store.peek("classes/C1")["students"] == 1  # type: ignore[index]
    assert app_store.peek("classes/C1/roster/S-2025-00001") is not None
    assert app_store.peek("users/u1/enrollments/C1") is not None


def test_enroll_rejections(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    missing_student = client.post("/api/classes/C1/students", json={"studentId": "S-nobody"})
    assert missing_student.status_code == 404

    missing_class = client.post("/api/classes/NOPE/students", json={"studentId": "S-2025-00001"})
    assert missing_class.status_code == 404

    archived = client.post("/api/classes/OLD/students", json={"studentId": "S-2025-00001"})
    assert archived.status_code == 403
    assert "archived" in archived.json()["detail"]

    blank = client.post("/api/classes/C1/students", json={"studentId": "   "})
    assert blank.status_code == 400

    no_body = client.post("/api/classes/C1/students", json={})
    assert no_body.status_code == 422


def test_unenroll(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)
    client.post("/api/classes/C1/students", json={"studentId": "S-2025-00001"})

    removed = client.delete("/api/classes/C1/students/S-2025-00001")
    assert removed.json() == {"success": True, "removed": True}
    assert app_store.peek("classes/C1")["students"] == 0  # type: ignore[index]
    assert app_store.peek("users/u1/enrollments/C1") is None

    again = client.delete("/api/classes/C1/students/S-2025-00001")
    assert again.json() == {"success": True, "removed": False}


def test_bulk_csv_upload(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)
    client.post("/api/classes/C1/students", json={"studentId": "S-2025-00002"})

    resp = client.post(
        "/api/classes/C1/students/bulk",
        files={
            "file": (
                "roster.csv",
                b"StudentID,Name\nS-2025-00001,Ana\nS-2025-00002,Ben\nS-missing,Who\n",
                "text/csv",
            )
        },
    )

    assert resp.status_code == 200
    report = resp.json()["report"]
    assert (report["total"], report["enrolled"], report["alreadyEnrolled"]) == (3, 1, 1)
    assert (report["notFound"], report["errors"]) == (1, 0)
    assert [d["status"] for d in report["details"]] == ["enrolled", "already", "not_found"]
    assert app_store.peek("classes/C1")["students"] == 2  # type: ignore[index]


def test_bulk_xlsx_with_custom_column(
    client: TestClient, app_store: InMemoryDocumentStore
) -> None:
    _seed(app_store)
    wb = Workbook()
    wb.active.append(["LRN"])
    wb.active.append(["S-2025-00001"])
    wb.active.append(["S-2025-00002"])
    buf = io.BytesIO()
    wb.save(buf)

    resp = client.post(
        "/api/classes/C1/students/bulk",
        files={"file": ("roster.xlsx", buf.getvalue(), "application/octet-stream")},
        data={"column": "LRN"},
    )

    assert resp.status_code == 200
    assert resp.json()["report"]["enrolled"] == 2


def test_bulk_rejects_bad_files(client: TestClient, app_store: InMemoryDocumentStore) -> None:
    _seed(app_store)

    wrong_type = client.post(
        "/api/classes/C1/students/bulk",
        files={"file": ("roster.txt", b"S-2025-00001", "text/plain")},
    )
    assert wrong_type.status_code == 400

    no_column = client.post(
        "/api/classes/C1/students/bulk",
        files={"file": ("roster.csv", b"name\nAna\n", "text/csv")},
    )
    assert no_column.status_code == 400
    assert "column" in no_column.json()["detail"]

    archived = client.post(
        "/api/classes/OLD/students/bulk",
        files={"file": ("roster.csv", b"studentid\nS-2025-00001\n", "text/csv")},
    )
    assert archived.status_code == 403
