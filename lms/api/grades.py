from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from lms.api.dependencies import get_grades
from lms.api.schemas import CamelModel, OkOut
from lms.core.errors import NotFoundError, ValidationError
from lms.services.cache import invalidate_leaderboards
from lms.services.grades import GradeRecorder

logger = logging.getLogger(__name__)

router = APIRouter(tags=["grades"])


class GradeIn(CamelModel):
    grade: float | None = None
    feedback: str | None = None


class GradeOut(OkOut):
    user_id: str | None
    average_assignment_grade: int | None
    graded_assignments_count: int


@router.patch(
    "/assignments/{assignment_id}/submissions/{student_id}", response_model=GradeOut
)
async def grade_submission(
    assignment_id: str,
    student_id: str,
    payload: GradeIn,
    recorder: Annotated[GradeRecorder, Depends(get_grades)],
) -> GradeOut:
    try:
        result = await recorder.record_grade(
            assignment_id, student_id, payload.grade, payload.feedback
        )
    except NotFoundError as e:
        logger.warning("Grade rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    except ValidationError as e:
        logger.warning("Grade rejected assignment=%s: %s", assignment_id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await invalidate_leaderboards()
    return GradeOut(
        user_id=result.user_id,
        average_assignment_grade=result.average_assignment_grade,
        graded_assignments_count=result.graded_count,
    )
