"""Student and teacher role grants.

Granting a role hands out a human-readable id (``S-2025-00042``) from the
sequence counter the first time.  A student keeps their id when the role
is revoked, since rosters are keyed by it; a teacher id is removed.
"""

from __future__ import annotations

import logging

from lms.core.errors import NotFoundError
from lms.models.user import User
from lms.services.counter import SequenceCounter
from lms.services.lookups import get_user
from lms.store.base import DELETE_FIELD, DocumentStore, join

logger = logging.getLogger(__name__)


class RoleService:
    def __init__(self, store: DocumentStore, counter: SequenceCounter | None = None) -> None:
        self._store = store
        self._counter = counter or SequenceCounter(store)

    async def _user(self, user_id: str) -> User:
        user = await get_user(self._store, user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def grant_student(self, user_id: str, enabled: bool) -> User:
        user = await self._user(user_id)
        updates: dict = {"isStudent": enabled}
        if enabled and not user.student_id:
            updates["studentId"] = await self._counter.next_role_id("student")
        await self._store.update(join("users", user.id), updates)
        logger.info(
            "Student role user=%s enabled=%s id=%s",
            user.id,
            enabled,
            updates.get("studentId", user.student_id),
        )
        return await self._user(user.id)

    async def grant_teacher(self, user_id: str, enabled: bool) -> User:
        user = await self._user(user_id)
        updates: dict = {"isTeacher": enabled}
        if enabled:
            updates["teacherId"] = user.teacher_id or await self._counter.next_role_id("teacher")
        else:
            updates["teacherId"] = DELETE_FIELD
        await self._store.update(join("users", user.id), updates)
        logger.info("Teacher role user=%s enabled=%s", user.id, enabled)
        return await self._user(user.id)
