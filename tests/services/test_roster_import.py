from __future__ import annotations

import io

import pytest
from openpyxl import Workbook

from lms.core.errors import ValidationError
from lms.services.roster_import import parse_student_ids


def _xlsx(rows: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_xlsx_default_column() -> None:
    content = _xlsx(
        [
            ["Name", "StudentID"],
            ["Ana", "S-2025-00001"],
            ["Ben", " S-2025-00002 "],
            ["Ana again", "S-2025-00001"],
            ["Blank", None],
        ]
    )
    assert parse_student_ids("roster.xlsx", content) == ["S-2025-00001", "S-2025-00002"]


def test_xlsx_custom_column_is_case_insensitive() -> None:
    content = _xlsx([["LRN", "Name"], ["123456", "Ana"], [654321, "Ben"]])
    assert parse_student_ids("Roster.XLSX", content, column="lrn") == ["123456", "654321"]


def test_csv_with_bom_and_spaced_header() -> None:
    content = "\ufeffStudent ID,Name\nS-1,Ana\nS-2,Ben\n,Empty\n".encode()
    assert parse_student_ids("roster.csv", content) == ["S-1", "S-2"]


def test_short_rows_are_skipped() -> None:
    content = b"name,studentid\nAna\nBen,S-2\n"
    assert parse_student_ids("roster.csv", content) == ["S-2"]


@pytest.mark.parametrize(
    "filename,content,message",
    [
        ("roster.pdf", b"%PDF", "xlsx or .csv"),
        ("roster.xlsx", b"not a zip", "could not read"),
        ("roster.csv", b"", "no rows"),
        ("roster.csv", b"name,email\nAna,a@x\n", "student id column"),
        ("roster.csv", b"studentid\n\n", "no student ids"),
        ("roster.csv", "studentid\nS-1\n".encode("utf-16"), "UTF-8"),
    ],
)
def test_rejected_uploads(filename: str, content: bytes, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        parse_student_ids(filename, content)
