from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lms.models.fields import as_datetime, as_number, as_str, as_str_list
from lms.store.base import Document

DEFAULT_PASSING_PERCENT = 60


@dataclass(frozen=True, slots=True)
class Course:
    id: str
    title: str = "Subject"
    uploaded_by: str | None = None
    assigned_classes: tuple[str, ...] = ()

    @staticmethod
    def from_doc(doc: Document) -> Course:
        d = doc.data
        return Course(
            id=doc.id,
            title=as_str(d.get("title")) or "Subject",
            uploaded_by=as_str(d.get("uploadedBy")),
            assigned_classes=as_str_list(d.get("assignedClasses")),
        )


@dataclass(frozen=True, slots=True)
class Module:
    id: str
    course_id: str | None = None
    number: int | None = None
    title: str | None = None

    @staticmethod
    def from_doc(doc: Document) -> Module:
        d = doc.data
        number = as_number(d.get("moduleNumber", d.get("number")))
        return Module(
            id=doc.id,
            course_id=as_str(d.get("courseId")),
            number=int(number) if number is not None else None,
            title=as_str(d.get("title")),
        )


@dataclass(frozen=True, slots=True)
class Quiz:
    id: str
    course_id: str | None = None
    module_id: str | None = None
    title: str | None = None
    number: int | None = None
    # None means unlimited; a stored 0 means the same thing.
    attempts_allowed: int | None = None
    passing_percent: int = DEFAULT_PASSING_PERCENT
    due_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> Quiz:
        d = doc.data
        allowed = as_number(d.get("attemptsAllowed"))
        passing = as_number(d.get("passingPercent"))
        number = as_number(d.get("number"))
        return Quiz(
            id=doc.id,
            course_id=as_str(d.get("courseId")),
            module_id=as_str(d.get("moduleId")),
            title=as_str(d.get("title")),
            number=int(number) if number is not None else None,
            attempts_allowed=int(allowed) if allowed and allowed > 0 else None,
            passing_percent=(
                int(passing) if passing is not None else DEFAULT_PASSING_PERCENT
            ),
            due_at=as_datetime(d.get("dueAt")) or as_datetime(d.get("closeAt")),
        )


@dataclass(frozen=True, slots=True)
class Assignment:
    id: str
    course_id: str | None = None
    module_id: str | None = None
    title: str | None = None
    points: float | None = None
    due_at: datetime | None = None
    publish_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> Assignment:
        d = doc.data
        return Assignment(
            id=doc.id,
            course_id=as_str(d.get("courseId")),
            module_id=as_str(d.get("moduleId")),
            title=as_str(d.get("title")),
            points=as_number(d.get("points")),
            due_at=as_datetime(d.get("dueAt")),
            publish_at=as_datetime(d.get("publishAt")),
        )


@dataclass(frozen=True, slots=True)
class Submission:
    """assignments/{assignmentId}/submissions/{userId}"""

    user_id: str
    submitted_at: datetime | None = None
    grade: float | None = None
    feedback: str | None = None

    def on_time(self, due_at: datetime | None) -> bool:
        return (
            self.submitted_at is not None
            and due_at is not None
            and self.submitted_at <= due_at
        )

    @staticmethod
    def from_doc(doc: Document) -> Submission:
        d = doc.data
        return Submission(
            user_id=doc.id,
            submitted_at=as_datetime(d.get("submittedAt")),
            grade=as_number(d.get("grade")),
            feedback=as_str(d.get("feedback")),
        )
