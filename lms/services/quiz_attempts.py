"""Quiz attempt recording under a per-quiz ceiling.

Layout under ``users/{uid}``:

  quizAttempts/{quizId}                 summary (attemptsUsed, bestPercent, ...)
  quizAttempts/{quizId}/attempts/{auto} one document per attempt, append-only
  completedModules/{moduleId}           written when an attempt passes

The ceiling check counts attempts outside any transaction and then
appends, so two submissions racing inside that window can both pass and
overrun the ceiling by one.  That is a known bound, not a guarantee.  The
summary never drifts because every write recomputes it from the full
attempt list inside a transaction that conflicts with concurrent appends.

Older clients created summaries with generated ids and a ``quizId`` field;
``_summary_path`` finds those before falling back to ``{quizId}``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from lms.core.errors import AttemptLimitReachedError, NotFoundError, ValidationError
from lms.core.metrics import QUIZ_ATTEMPTS
from lms.models.course import Quiz
from lms.models.fields import round_half_up
from lms.models.progress import Attempt, QuizAttemptSummary, percent_of
from lms.store.base import SERVER_TIMESTAMP, DocumentStore, Filter, Transaction, join

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AttemptResult:
    attempt_id: str
    percent: int
    best_percent: int
    used: int
    allowed: int | None
    left: int | None
    module_completed: bool
    average_quiz_score: int | None


@dataclass(frozen=True, slots=True)
class AttemptStatus:
    used: int
    allowed: int | None
    left: int | None
    locked: bool


@dataclass(frozen=True, slots=True)
class NumberedAttempt:
    number: int
    attempt: Attempt


def _remaining(used: int, allowed: int | None) -> int | None:
    if allowed is None:
        return None
    return max(0, allowed - used)


def _check_number(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{name} must be a non-negative number")
    return value


class QuizAttemptRecorder:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def _quiz(self, quiz_id: str) -> Quiz:
        if not quiz_id or "/" in quiz_id:
            raise NotFoundError("quiz", quiz_id)
        doc = await self._store.get(join("quizzes", quiz_id))
        if doc is None:
            raise NotFoundError("quiz", quiz_id)
        return Quiz.from_doc(doc)

    async def _summary_path(self, user_id: str, quiz_id: str) -> str:
        root = join("users", user_id, "quizAttempts")
        direct = join(root, quiz_id)
        if await self._store.get(direct) is not None:
            return direct
        legacy = await self._store.query(root, [Filter("quizId", "==", quiz_id)], limit=1)
        if legacy:
            return legacy[0].path
        return direct

    async def _used(self, summary_path: str) -> int:
        return len(await self._store.list_documents(join(summary_path, "attempts")))

    async def record_attempt(
        self,
        user_id: str,
        quiz_id: str,
        score: float,
        total: float,
        reason: str | None = None,
        time_taken_seconds: float | None = None,
        module_id: str | None = None,
        course_id: str | None = None,
    ) -> AttemptResult:
        """Append one attempt and refresh every summary derived from it.

        Raises NotFoundError (unknown quiz), ValidationError (bad numbers),
        AttemptLimitReachedError, or TransientStoreError.
        """
        score = _check_number("score", score)
        total = _check_number("total", total)
        if time_taken_seconds is not None:
            time_taken_seconds = _check_number("timeTakenSeconds", time_taken_seconds)
        quiz = await self._quiz(quiz_id)

        module_id = module_id or quiz.module_id
        course_id = course_id or quiz.course_id
        allowed = quiz.attempts_allowed

        summary_path = await self._summary_path(user_id, quiz.id)
        attempts_path = join(summary_path, "attempts")
        used = await self._used(summary_path)
        if allowed is not None and used >= allowed:
            QUIZ_ATTEMPTS.labels(outcome="limit_reached").inc()
            logger.info(
                "Attempt limit reached user=%s quiz=%s used=%d allowed=%d",
                user_id,
                quiz.id,
                used,
                allowed,
            )
            raise AttemptLimitReachedError(used, allowed)

        percent = percent_of(score, total)
        attempt_id = await self._store.add(
            attempts_path,
            {
                "score": score,
                "total": total,
                "percent": percent,
                "submittedAt": SERVER_TIMESTAMP,
                "reason": reason or "manual",
                "timeTakenSeconds": time_taken_seconds,
            },
        )
        passed = module_id is not None and percent >= quiz.passing_percent

        async def _summarize(tx: Transaction) -> tuple[int, int]:
            attempts = [Attempt.from_doc(d) for d in await tx.list_documents(attempts_path)]
            count = len(attempts)
            best = max((a.percent for a in attempts), default=percent)
            tx.set(
                summary_path,
                {
                    "quizId": quiz.id,
                    "courseId": course_id,
                    "moduleId": module_id,
                    "attemptsUsed": count,
                    "attemptsAllowed": allowed,
                    "lastScore": {"score": score, "total": total, "percent": percent},
                    "bestPercent": best,
                    "lastSubmittedAt": SERVER_TIMESTAMP,
                },
                merge=True,
            )
            if passed:
                tx.set(
                    join("users", user_id, "completedModules", module_id),
                    {
                        "moduleId": module_id,
                        "courseId": course_id,
                        "quizId": quiz.id,
                        "percent": percent,
                        "completedAt": SERVER_TIMESTAMP,
                    },
                    merge=True,
                )
            return count, best

        count, best = await self._store.run_transaction(_summarize)
        average = await self.refresh_average(user_id)
        QUIZ_ATTEMPTS.labels(outcome="recorded").inc()
        logger.info(
            "Attempt recorded user=%s quiz=%s percent=%d best=%d used=%d passed=%s",
            user_id,
            quiz.id,
            percent,
            best,
            count,
            passed,
        )
        return AttemptResult(
            attempt_id=attempt_id,
            percent=percent,
            best_percent=best,
            used=count,
            allowed=allowed,
            left=_remaining(count, allowed),
            module_completed=passed,
            average_quiz_score=average,
        )

    async def refresh_average(self, user_id: str) -> int | None:
        """Store the rounded mean of every quiz's best percent on the user."""
        docs = await self._store.list_documents(join("users", user_id, "quizAttempts"))
        bests = [
            s.best_percent
            for s in map(QuizAttemptSummary.from_doc, docs)
            if s.best_percent is not None
        ]
        if not bests:
            return None
        average = round_half_up(sum(bests) / len(bests))
        await self._store.set(
            join("users", user_id), {"averageQuizScore": average}, merge=True
        )
        return average

    async def attempt_status(
        self, user_id: str, quiz_ids: Iterable[str]
    ) -> dict[str, AttemptStatus]:
        """Usage per quiz.  Unknown quizzes report zero used and no ceiling."""
        out: dict[str, AttemptStatus] = {}
        for quiz_id in quiz_ids:
            quiz_id = quiz_id.strip()
            if not quiz_id or quiz_id in out:
                continue
            try:
                quiz = await self._quiz(quiz_id)
            except NotFoundError:
                out[quiz_id] = AttemptStatus(used=0, allowed=None, left=None, locked=False)
                continue
            used = await self._used(await self._summary_path(user_id, quiz.id))
            left = _remaining(used, quiz.attempts_allowed)
            out[quiz_id] = AttemptStatus(
                used=used,
                allowed=quiz.attempts_allowed,
                left=left,
                locked=left == 0,
            )
        return out

    async def list_attempts(self, user_id: str, quiz_id: str) -> list[NumberedAttempt]:
        """Attempts oldest first, numbered from 1."""
        if not quiz_id or "/" in quiz_id or not user_id or "/" in user_id:
            return []
        summary_path = await self._summary_path(user_id, quiz_id)
        docs = await self._store.query(
            join(summary_path, "attempts"), order_by="submittedAt"
        )
        return [
            NumberedAttempt(number=i, attempt=Attempt.from_doc(d))
            for i, d in enumerate(docs, start=1)
        ]
