"""Idempotent class enrollment.

Three documents change together when a student joins a class:

  classes/{classId}/roster/{studentId}     source of truth
  classes/{classId}.students               denormalized count (+1)
  users/{uid}/enrollments/{classId}        mirror for personal listings

They are written in one transaction whose only read is the roster
entry.  If the entry already exists the transaction writes nothing, so
retrying an enroll (client retry, double click, bulk re-upload) is a
pure no-op and the count moves by exactly one.  If the process dies
mid-way, the commit either landed as a whole or not at all.

The class count is only ever incremented or decremented, never
recomputed, so it can drift from the roster size after manual edits.
Readers that need the real size count roster entries instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from lms.core.errors import ClassArchivedError, NotFoundError
from lms.core.metrics import ENROLLMENTS
from lms.models.classroom import Classroom
from lms.models.user import User
from lms.services.chunking import unique
from lms.services.lookups import get_class, user_by_field
from lms.store.base import SERVER_TIMESTAMP, DocumentStore, Increment, Transaction, join

logger = logging.getLogger(__name__)

BulkStatus = Literal["enrolled", "already", "not_found", "error"]


@dataclass(frozen=True, slots=True)
class EnrollmentResult:
    already_enrolled: bool
    user_id: str


@dataclass(frozen=True, slots=True)
class BulkEnrollmentDetail:
    student_id: str
    status: BulkStatus
    error: str | None = None


@dataclass(slots=True)
class BulkEnrollmentReport:
    total: int = 0
    enrolled: int = 0
    already_enrolled: int = 0
    not_found: int = 0
    errors: int = 0
    details: list[BulkEnrollmentDetail] = field(default_factory=list)

    def record(self, detail: BulkEnrollmentDetail) -> None:
        self.details.append(detail)
        if detail.status == "enrolled":
            self.enrolled += 1
        elif detail.status == "already":
            self.already_enrolled += 1
        elif detail.status == "not_found":
            self.not_found += 1
        else:
            self.errors += 1


def _roster_entry(user: User, student_id: str) -> dict:
    return {
        "studentId": student_id,
        "fullName": user.name,
        "email": user.email or "",
        "photoURL": user.photo_url or "",
        "active": user.active,
        "enrolledAt": SERVER_TIMESTAMP,
    }


def _enrollment_mirror(classroom: Classroom) -> dict:
    return {
        "classId": classroom.id,
        "name": classroom.name or "",
        "gradeLevel": classroom.grade_level or "",
        "section": classroom.section or "",
        "schoolYear": classroom.school_year or "",
        "semester": classroom.semester or "",
        "teacherId": classroom.teacher_id or "",
        "enrolledAt": SERVER_TIMESTAMP,
    }


class EnrollmentCoordinator:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def _open_class(self, class_id: str) -> Classroom:
        classroom = await get_class(self._store, class_id)
        if classroom is None:
            raise NotFoundError("class", class_id)
        if classroom.archived:
            raise ClassArchivedError(class_id)
        return classroom

    async def _student(self, student_id: str) -> User:
        # Roster ids double as document ids.
        if "/" in student_id:
            raise NotFoundError("student", student_id)
        user = await user_by_field(self._store, "studentId", student_id)
        if user is None:
            raise NotFoundError("student", student_id)
        return user

    async def _link(
        self, classroom: Classroom, user: User, student_id: str
    ) -> EnrollmentResult:
        roster_path = join("classes", classroom.id, "roster", student_id)
        class_path = join("classes", classroom.id)
        mirror_path = join("users", user.id, "enrollments", classroom.id)

        async def _write(tx: Transaction) -> bool:
            if await tx.get(roster_path) is not None:
                return True
            tx.set(roster_path, _roster_entry(user, student_id), merge=True)
            tx.update(class_path, {"students": Increment(1)})
            tx.set(mirror_path, _enrollment_mirror(classroom), merge=True)
            return False

        already = await self._store.run_transaction(_write)
        ENROLLMENTS.labels(outcome="already" if already else "enrolled").inc()
        logger.info(
            "Enroll class=%s student=%s user=%s already=%s",
            classroom.id,
            student_id,
            user.id,
            already,
        )
        return EnrollmentResult(already_enrolled=already, user_id=user.id)

    async def enroll(self, class_id: str, student_id: str) -> EnrollmentResult:
        """Link a student into a class roster exactly once.

        Raises NotFoundError (unknown student or class), ClassArchivedError,
        or TransientStoreError.
        """
        sid = student_id.strip()
        if not sid:
            raise NotFoundError("student", student_id)
        user = await self._student(sid)
        classroom = await self._open_class(class_id)
        return await self._link(classroom, user, sid)

    async def bulk_enroll(
        self, class_id: str, student_ids: Iterable[str]
    ) -> BulkEnrollmentReport:
        """Enroll every id, reporting a status per id.

        A missing or archived class aborts the whole call; anything that
        goes wrong for one id is recorded in its detail and the batch
        carries on.
        """
        classroom = await self._open_class(class_id)
        ids = unique(s.strip() for s in student_ids if s is not None)
        report = BulkEnrollmentReport(total=len(ids))

        for sid in ids:
            try:
                result = await self._link(classroom, await self._student(sid), sid)
            except NotFoundError:
                report.record(BulkEnrollmentDetail(sid, "not_found"))
            except Exception as e:
                logger.warning(
                    "Bulk enroll failed class=%s student=%s: %s",
                    class_id,
                    sid,
                    e,
                    exc_info=True,
                )
                report.record(BulkEnrollmentDetail(sid, "error", type(e).__name__))
            else:
                status: BulkStatus = "already" if result.already_enrolled else "enrolled"
                report.record(BulkEnrollmentDetail(sid, status))

        logger.info(
            "Bulk enroll class=%s total=%d enrolled=%d already=%d not_found=%d errors=%d",
            class_id,
            report.total,
            report.enrolled,
            report.already_enrolled,
            report.not_found,
            report.errors,
        )
        return report

    async def unenroll(self, class_id: str, student_id: str) -> bool:
        """Remove a roster entry and its mirror.  False if it was not there."""
        classroom = await self._open_class(class_id)
        sid = student_id.strip()
        user = await user_by_field(self._store, "studentId", sid) if sid else None

        roster_path = join("classes", classroom.id, "roster", sid)
        class_path = join("classes", classroom.id)

        async def _unlink(tx: Transaction) -> bool:
            if not sid or await tx.get(roster_path) is None:
                return False
            tx.delete(roster_path)
            tx.update(class_path, {"students": Increment(-1)})
            if user is not None:
                tx.delete(join("users", user.id, "enrollments", classroom.id))
            return True

        removed = await self._store.run_transaction(_unlink)
        if removed:
            ENROLLMENTS.labels(outcome="removed").inc()
        logger.info("Unenroll class=%s student=%s removed=%s", class_id, sid, removed)
        return removed
