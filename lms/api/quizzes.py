"""Quiz attempt endpoints.

  POST /submit-quiz-score                          record one attempt
  GET  /api/students/{user_id}/quiz-attempts       usage per quiz (?quizIds=a,b)
  GET  /api/students/{user_id}/quiz-results        attempt history (?quizId=)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from lms.api.dependencies import Store, get_quiz_attempts
from lms.api.schemas import CamelModel, OkOut
from lms.core.errors import AttemptLimitReachedError, NotFoundError, ValidationError
from lms.services.cache import invalidate_leaderboards
from lms.services.lookups import user_by_email
from lms.services.quiz_attempts import QuizAttemptRecorder

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quizzes"])

Recorder = Annotated[QuizAttemptRecorder, Depends(get_quiz_attempts)]


class QuizScoreIn(CamelModel):
    email: str
    quiz_id: str
    score: float
    total: float
    reason: str | None = None
    time_taken_seconds: float | None = None
    module_id: str | None = None
    course_id: str | None = None


class AttemptUsageOut(CamelModel):
    used: int
    allowed: int | None
    left: int | None


class QuizScoreOut(OkOut):
    attempt_id: str
    percent: int
    best_percent: int
    module_completed: bool
    attempts: AttemptUsageOut


class AttemptStatusOut(AttemptUsageOut):
    lock: bool


class AttemptStatusMapOut(OkOut):
    data: dict[str, AttemptStatusOut]


class AttemptOut(CamelModel):
    attempt: int
    attempt_id: str
    submitted_at: datetime | None
    time_taken_seconds: float | None
    reason: str
    score: float
    total: float
    percent: int


class QuizResultsOut(OkOut):
    attempts: list[AttemptOut]
    best: AttemptOut | None
    latest: AttemptOut | None


@router.post("/submit-quiz-score", response_model=QuizScoreOut)
async def submit_quiz_score(
    payload: QuizScoreIn, recorder: Recorder, store: Store
) -> QuizScoreOut:
    user = await user_by_email(store, payload.email)
    if user is None:
        logger.warning("Quiz score for unknown user email=%s", payload.email)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    try:
        result = await recorder.record_attempt(
            user.id,
            payload.quiz_id.strip(),
            payload.score,
            payload.total,
            reason=payload.reason,
            time_taken_seconds=payload.time_taken_seconds,
            module_id=payload.module_id,
            course_id=payload.course_id,
        )
    except AttemptLimitReachedError as e:
        logger.warning(
            "Attempt rejected user=%s quiz=%s: %s", user.id, payload.quiz_id, e
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "No attempts left for this quiz.",
                "attempts": {"used": e.used, "allowed": e.allowed, "left": e.left},
            },
        ) from None
    except NotFoundError as e:
        logger.warning("Attempt rejected user=%s: %s", user.id, e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from None
    except ValidationError as e:
        logger.warning("Attempt rejected user=%s: %s", user.id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    await invalidate_leaderboards()
    return QuizScoreOut(
        attempt_id=result.attempt_id,
        percent=result.percent,
        best_percent=result.best_percent,
        module_completed=result.module_completed,
        attempts=AttemptUsageOut(used=result.used, allowed=result.allowed, left=result.left),
    )


@router.get("/api/students/{user_id}/quiz-attempts", response_model=AttemptStatusMapOut)
async def quiz_attempt_status(
    user_id: str,
    recorder: Recorder,
    quiz_ids: Annotated[str, Query(alias="quizIds")] = "",
) -> AttemptStatusMapOut:
    ids = [q for q in quiz_ids.split(",") if q.strip()]
    statuses = await recorder.attempt_status(user_id, ids)
    return AttemptStatusMapOut(
        data={
            qid: AttemptStatusOut(used=s.used, allowed=s.allowed, left=s.left, lock=s.locked)
            for qid, s in statuses.items()
        }
    )


@router.get("/api/students/{user_id}/quiz-results", response_model=QuizResultsOut)
async def quiz_results(
    user_id: str,
    recorder: Recorder,
    quiz_id: Annotated[str, Query(alias="quizId")] = "",
) -> QuizResultsOut:
    if not quiz_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="quizId is required."
        )
    numbered = await recorder.list_attempts(user_id, quiz_id.strip())
    attempts = [
        AttemptOut(
            attempt=n.number,
            attempt_id=n.attempt.id,
            submitted_at=n.attempt.submitted_at,
            time_taken_seconds=n.attempt.time_taken_seconds,
            reason=n.attempt.reason,
            score=n.attempt.score,
            total=n.attempt.total,
            percent=n.attempt.percent,
        )
        for n in numbered
    ]
    best = max(attempts, key=lambda a: a.percent, default=None)
    return QuizResultsOut(
        attempts=attempts,
        best=best,
        latest=attempts[-1] if attempts else None,
    )
