from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lms.models.fields import as_datetime, as_number, as_str
from lms.store.base import Document


@dataclass(frozen=True, slots=True)
class Classroom:
    id: str
    name: str | None = None
    teacher_id: str | None = None
    grade_level: str | None = None
    section: str | None = None
    school_year: str | None = None
    semester: str | None = None
    # Denormalized roster size; maintained by increments, may drift.
    students: int = 0
    archived: bool = False
    created_at: datetime | None = None

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.grade_level or self.section:
            return "-".join(p for p in (self.grade_level, self.section) if p)
        return "Class"

    @staticmethod
    def from_doc(doc: Document) -> Classroom:
        d = doc.data
        return Classroom(
            id=doc.id,
            name=as_str(d.get("name")),
            teacher_id=as_str(d.get("teacherId")),
            grade_level=as_str(d.get("gradeLevel")),
            section=as_str(d.get("section")),
            school_year=as_str(d.get("schoolYear")),
            semester=as_str(d.get("semester")),
            students=int(as_number(d.get("students")) or 0),
            archived=bool(d.get("archived", False)),
            created_at=as_datetime(d.get("createdAt")),
        )


@dataclass(frozen=True, slots=True)
class RosterEntry:
    """classes/{classId}/roster/{studentId}: the source of truth for membership."""

    student_id: str
    full_name: str | None = None
    email: str | None = None
    active: bool = True
    enrolled_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> RosterEntry:
        d = doc.data
        return RosterEntry(
            student_id=doc.id,
            full_name=as_str(d.get("fullName")),
            email=as_str(d.get("email")),
            active=d.get("active") is not False,
            enrolled_at=as_datetime(d.get("enrolledAt")),
        )


@dataclass(frozen=True, slots=True)
class Enrollment:
    """users/{uid}/enrollments/{classId}: mirror of a roster entry."""

    class_id: str
    name: str | None = None
    teacher_id: str | None = None
    enrolled_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> Enrollment:
        d = doc.data
        return Enrollment(
            class_id=doc.id,
            name=as_str(d.get("name")),
            teacher_id=as_str(d.get("teacherId")),
            enrolled_at=as_datetime(d.get("enrolledAt")),
        )
