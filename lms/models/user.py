from __future__ import annotations

from dataclasses import dataclass

from lms.models.fields import as_number, as_str
from lms.store.base import Document

DEFAULT_DISPLAY_NAME = "Student"


def display_name(data: dict) -> str:
    """fullName, then "first last", then username, then email, then "Student"."""
    full = as_str(data.get("fullName"))
    if full:
        return full
    parts = [as_str(data.get("firstName")), as_str(data.get("lastName"))]
    joined = " ".join(p for p in parts if p)
    if joined:
        return joined
    return (
        as_str(data.get("username")) or as_str(data.get("email")) or DEFAULT_DISPLAY_NAME
    )


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str | None = None
    name: str = DEFAULT_DISPLAY_NAME
    photo_url: str | None = None
    is_student: bool = False
    is_teacher: bool = False
    is_admin: bool = False
    student_id: str | None = None
    teacher_id: str | None = None
    active: bool = True
    average_quiz_score: float | None = None
    average_assignment_grade: float | None = None
    leaderboard_opt_in: bool = True

    @staticmethod
    def from_doc(doc: Document) -> User:
        d = doc.data
        return User(
            id=doc.id,
            email=as_str(d.get("email")),
            name=display_name(d),
            photo_url=as_str(d.get("photoURL")),
            is_student=bool(d.get("isStudent", False)),
            is_teacher=bool(d.get("isTeacher", False)),
            is_admin=bool(d.get("isAdmin", False)),
            student_id=as_str(d.get("studentId")),
            teacher_id=as_str(d.get("teacherId")),
            active=d.get("active") is not False,
            average_quiz_score=as_number(d.get("averageQuizScore")),
            average_assignment_grade=as_number(d.get("averageAssignmentGrade")),
            # Only an explicit False opts out.
            leaderboard_opt_in=d.get("leaderboardOptIn") is not False,
        )
