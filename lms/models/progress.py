"""Per-user derived records.

All of these live under ``users/{uid}`` and are written only by the
components that compute them (attempt recorder, grade recorder).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lms.models.fields import as_datetime, as_number, as_str, round_half_up
from lms.store.base import Document


def percent_of(score: float, total: float) -> int:
    """Whole-number percentage; a zero total scores 0."""
    if total <= 0:
        return 0
    return round_half_up(score / total * 100)


@dataclass(frozen=True, slots=True)
class CompletedModule:
    """users/{uid}/completedModules/{moduleId}"""

    module_id: str
    course_id: str | None = None
    quiz_id: str | None = None
    percent: int | None = None
    completed_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> CompletedModule:
        d = doc.data
        percent = as_number(d.get("percent"))
        return CompletedModule(
            module_id=as_str(d.get("moduleId")) or doc.id,
            course_id=as_str(d.get("courseId")),
            quiz_id=as_str(d.get("quizId")),
            percent=round_half_up(percent) if percent is not None else None,
            completed_at=as_datetime(d.get("completedAt")),
        )


@dataclass(frozen=True, slots=True)
class Attempt:
    """users/{uid}/quizAttempts/{quizId}/attempts/{auto}: append-only."""

    id: str
    score: float
    total: float
    percent: int
    submitted_at: datetime | None = None
    reason: str = "manual"
    time_taken_seconds: float | None = None

    @staticmethod
    def from_doc(doc: Document) -> Attempt:
        d = doc.data
        score = as_number(d.get("score", d.get("autoScore"))) or 0.0
        total = as_number(d.get("total", d.get("autoTotal"))) or 0.0
        stored = as_number(d.get("percent", d.get("autoPercent")))
        return Attempt(
            id=doc.id,
            score=score,
            total=total,
            percent=round_half_up(stored) if stored is not None else percent_of(score, total),
            submitted_at=as_datetime(d.get("submittedAt")),
            reason=as_str(d.get("reason")) or "manual",
            time_taken_seconds=as_number(d.get("timeTakenSeconds")),
        )


@dataclass(frozen=True, slots=True)
class QuizAttemptSummary:
    """users/{uid}/quizAttempts/{quizId}

    ``best_percent`` folds in the legacy ``bestScore.percent`` and
    ``lastScore.percent`` fields that older summaries carry instead.
    """

    doc_id: str
    quiz_id: str
    course_id: str | None = None
    module_id: str | None = None
    attempts_used: int = 0
    attempts_allowed: int | None = None
    best_percent: int | None = None
    last_percent: int | None = None
    last_submitted_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> QuizAttemptSummary:
        d = doc.data
        last = d.get("lastScore") if isinstance(d.get("lastScore"), dict) else {}
        legacy_best = d.get("bestScore") if isinstance(d.get("bestScore"), dict) else {}
        last_percent = as_number(last.get("percent"))
        best = as_number(d.get("bestPercent"))
        if best is None:
            best = as_number(legacy_best.get("percent"))
        if best is None:
            best = last_percent
        allowed = as_number(d.get("attemptsAllowed"))
        return QuizAttemptSummary(
            doc_id=doc.id,
            quiz_id=as_str(d.get("quizId")) or doc.id,
            course_id=as_str(d.get("courseId")),
            module_id=as_str(d.get("moduleId")),
            attempts_used=int(as_number(d.get("attemptsUsed")) or 0),
            attempts_allowed=int(allowed) if allowed and allowed > 0 else None,
            best_percent=round_half_up(best) if best is not None else None,
            last_percent=round_half_up(last_percent) if last_percent is not None else None,
            last_submitted_at=as_datetime(d.get("lastSubmittedAt")),
        )


@dataclass(frozen=True, slots=True)
class AssignmentGrade:
    """users/{uid}/assignmentGrades/{assignmentId}: mirror of a graded submission."""

    assignment_id: str
    course_id: str | None = None
    grade: float | None = None
    graded_at: datetime | None = None

    @staticmethod
    def from_doc(doc: Document) -> AssignmentGrade:
        d = doc.data
        return AssignmentGrade(
            assignment_id=as_str(d.get("assignmentId")) or doc.id,
            course_id=as_str(d.get("courseId")),
            grade=as_number(d.get("grade")),
            graded_at=as_datetime(d.get("gradedAt")),
        )
