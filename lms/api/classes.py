"""Class roster endpoints.

  POST   /api/classes/{class_id}/students              enroll one student
  DELETE /api/classes/{class_id}/students/{student_id} remove one student
  POST   /api/classes/{class_id}/students/bulk         enroll from a spreadsheet

Enrollment is idempotent: re-posting the same student answers
``alreadyEnrolled: true`` and changes nothing.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from lms.api.dependencies import get_enrollment
from lms.api.schemas import CamelModel, OkOut
from lms.core.errors import ClassArchivedError, NotFoundError, ValidationError
from lms.services.cache import invalidate_leaderboards
from lms.services.enrollment import EnrollmentCoordinator
from lms.services.roster_import import DEFAULT_COLUMN, parse_student_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/classes", tags=["classes"])

Coordinator = Annotated[EnrollmentCoordinator, Depends(get_enrollment)]


class EnrollIn(CamelModel):
    student_id: str


class EnrollOut(OkOut):
    already_enrolled: bool


class UnenrollOut(OkOut):
    removed: bool


class BulkDetailOut(CamelModel):
    student_id: str
    status: str
    error: str | None = None


class BulkReportOut(CamelModel):
    total: int
    enrolled: int
    already_enrolled: int
    not_found: int
    errors: int
    details: list[BulkDetailOut]


class BulkEnrollOut(OkOut):
    report: BulkReportOut


def _roster_error(e: Exception, class_id: str) -> HTTPException:
    if isinstance(e, ClassArchivedError):
        logger.warning("Roster change rejected: class=%s is archived", class_id)
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Class is archived; roster changes are not allowed.",
        )
    logger.warning("Roster change rejected: %s", e)
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{class_id}/students", response_model=EnrollOut)
async def enroll_student(
    class_id: str, payload: EnrollIn, coordinator: Coordinator
) -> EnrollOut:
    student_id = payload.student_id.strip()
    if not student_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="studentId is required."
        )
    try:
        result = await coordinator.enroll(class_id, student_id)
    except (NotFoundError, ClassArchivedError) as e:
        raise _roster_error(e, class_id) from None
    if not result.already_enrolled:
        await invalidate_leaderboards()
    return EnrollOut(already_enrolled=result.already_enrolled)


@router.delete("/{class_id}/students/{student_id}", response_model=UnenrollOut)
async def unenroll_student(
    class_id: str, student_id: str, coordinator: Coordinator
) -> UnenrollOut:
    try:
        removed = await coordinator.unenroll(class_id, student_id)
    except (NotFoundError, ClassArchivedError) as e:
        raise _roster_error(e, class_id) from None
    if removed:
        await invalidate_leaderboards()
    return UnenrollOut(removed=removed)


@router.post("/{class_id}/students/bulk", response_model=BulkEnrollOut)
async def bulk_enroll(
    class_id: str,
    coordinator: Coordinator,
    file: Annotated[UploadFile, File()],
    column: Annotated[str, Form()] = DEFAULT_COLUMN,
) -> BulkEnrollOut:
    content = await file.read()
    try:
        student_ids = parse_student_ids(file.filename or "", content, column)
    except ValidationError as e:
        logger.warning("Bulk upload rejected class=%s file=%s: %s", class_id, file.filename, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    try:
        report = await coordinator.bulk_enroll(class_id, student_ids)
    except (NotFoundError, ClassArchivedError) as e:
        raise _roster_error(e, class_id) from None
    if report.enrolled:
        await invalidate_leaderboards()

    return BulkEnrollOut(
        report=BulkReportOut(
            total=report.total,
            enrolled=report.enrolled,
            already_enrolled=report.already_enrolled,
            not_found=report.not_found,
            errors=report.errors,
            details=[
                BulkDetailOut(student_id=d.student_id, status=d.status, error=d.error)
                for d in report.details
            ],
        )
    )
