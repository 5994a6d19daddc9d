"""Teacher grading of assignment submissions.

A grade lands in two places: on the submission itself and in the
student's ``assignmentGrades`` mirror, from which the user's
``averageAssignmentGrade`` and ``gradedAssignmentsCount`` are recomputed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from lms.core.errors import NotFoundError, ValidationError
from lms.models.course import Assignment
from lms.models.fields import round_half_up
from lms.models.progress import AssignmentGrade
from lms.services.lookups import resolve_user
from lms.store.base import SERVER_TIMESTAMP, DocumentStore, join

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GradeResult:
    user_id: str | None
    average_assignment_grade: int | None
    graded_count: int


class GradeRecorder:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def record_grade(
        self,
        assignment_id: str,
        student_key: str,
        grade: float | None,
        feedback: str | None = None,
    ) -> GradeResult:
        """Grade one submission and refresh the student's grade average.

        ``student_key`` may be a user id, studentId or email.  When it
        resolves to no user only the submission is updated.
        """
        if grade is not None and (
            isinstance(grade, bool) or not math.isfinite(grade) or grade < 0
        ):
            raise ValidationError("grade must be a non-negative number")
        if not assignment_id or "/" in assignment_id:
            raise NotFoundError("assignment", assignment_id)
        if not student_key or "/" in student_key:
            raise NotFoundError("submission", student_key)
        doc = await self._store.get(join("assignments", assignment_id))
        if doc is None:
            raise NotFoundError("assignment", assignment_id)
        assignment = Assignment.from_doc(doc)

        sub_path = join("assignments", assignment_id, "submissions", student_key)
        updates: dict = {"updatedAt": SERVER_TIMESTAMP}
        if grade is not None:
            updates["grade"] = grade
            updates["graded"] = True
        if feedback is not None:
            updates["feedback"] = feedback
        await self._store.set(sub_path, updates, merge=True)
        submission = await self._store.get(sub_path)
        stored = submission.data if submission is not None else {}

        user = await resolve_user(self._store, student_key)
        if user is None:
            logger.warning(
                "Graded assignment=%s for unknown student=%s; no grade mirror written",
                assignment_id,
                student_key,
            )
            return GradeResult(user_id=None, average_assignment_grade=None, graded_count=0)

        await self._store.set(
            join("users", user.id, "assignmentGrades", assignment_id),
            {
                "assignmentId": assignment_id,
                "courseId": assignment.course_id,
                "moduleId": assignment.module_id,
                "assignmentTitle": assignment.title or "Untitled",
                "points": assignment.points,
                "dueAt": assignment.due_at,
                "submittedAt": stored.get("submittedAt"),
                "gradedAt": SERVER_TIMESTAMP,
                "grade": stored.get("grade"),
                "feedback": stored.get("feedback"),
            },
            merge=True,
        )

        docs = await self._store.list_documents(join("users", user.id, "assignmentGrades"))
        grades = [
            g.grade for g in map(AssignmentGrade.from_doc, docs) if g.grade is not None
        ]
        average = round_half_up(sum(grades) / len(grades)) if grades else 0
        await self._store.set(
            join("users", user.id),
            {"gradedAssignmentsCount": len(grades), "averageAssignmentGrade": average},
            merge=True,
        )
        logger.info(
            "Graded assignment=%s user=%s grade=%s average=%d",
            assignment_id,
            user.id,
            grade,
            average,
        )
        return GradeResult(
            user_id=user.id, average_assignment_grade=average, graded_count=len(grades)
        )
