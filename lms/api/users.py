from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import StrictBool

from lms.api.dependencies import get_roles
from lms.api.schemas import CamelModel, OkOut
from lms.core.errors import NotFoundError
from lms.models.user import User
from lms.services.roles import RoleService

logger = logging.getLogger(__name__)

# Role toggles.  Granting a role assigns its human-readable id
# (S-2025-00001 / T-2025-00001) on first grant.

router = APIRouter(prefix="/api/users", tags=["users"])

Roles = Annotated[RoleService, Depends(get_roles)]


class StudentRoleIn(CamelModel):
    is_student: StrictBool


class TeacherRoleIn(CamelModel):
    is_teacher: StrictBool


class UserOut(CamelModel):
    id: str
    email: str | None
    name: str
    is_student: bool
    is_teacher: bool
    student_id: str | None
    teacher_id: str | None


class UserEnvelopeOut(OkOut):
    user: UserOut


def _envelope(user: User) -> UserEnvelopeOut:
    return UserEnvelopeOut(
        user=UserOut(
            id=user.id,
            email=user.email,
            name=user.name,
            is_student=user.is_student,
            is_teacher=user.is_teacher,
            student_id=user.student_id,
            teacher_id=user.teacher_id,
        )
    )


@router.patch("/{user_id}/student", response_model=UserEnvelopeOut)
async def set_student_role(user_id: str, payload: StudentRoleIn, roles: Roles) -> UserEnvelopeOut:
    try:
        user = await roles.grant_student(user_id, payload.is_student)
    except NotFoundError:
        logger.warning("Student role change for unknown user=%s", user_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found."
        ) from None
    return _envelope(user)


@router.patch("/{user_id}/teacher", response_model=UserEnvelopeOut)
async def set_teacher_role(user_id: str, payload: TeacherRoleIn, roles: Roles) -> UserEnvelopeOut:
    try:
        user = await roles.grant_teacher(user_id, payload.is_teacher)
    except NotFoundError:
        logger.warning("Teacher role change for unknown user=%s", user_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found."
        ) from None
    return _envelope(user)
