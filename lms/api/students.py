"""Student rewards, progress and leaderboards.

  GET   /api/students/{user_id}/rewards            points, streak, badges, opt-in
  GET   /api/students/{user_id}/badges
  GET   /api/students/{user_id}/progress           module completion per course
  PATCH /api/students/{user_id}/leaderboard-optin  {optIn}
  GET   /api/leaderboard?userId=&scope=&timeframe=&subject=

Leaderboards are read-through cached (see lms.services.cache).
"""

from __future__ import annotations

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import StrictBool

from lms.api.dependencies import get_gamification, get_leaderboard
from lms.api.schemas import CamelModel, OkOut
from lms.core.config import SETTINGS
from lms.core.errors import NotFoundError, ValidationError
from lms.core.metrics import CACHE_OPERATIONS
from lms.services.cache import cache_service, invalidate_leaderboards, leaderboard_key
from lms.services.gamification import Badge, GamificationCalculator
from lms.services.leaderboard import LeaderboardBuilder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["students"])

Calculator = Annotated[GamificationCalculator, Depends(get_gamification)]
Builder = Annotated[LeaderboardBuilder, Depends(get_leaderboard)]


class BadgeOut(CamelModel):
    label: str
    type: str


class RewardsOut(OkOut):
    total_points: int
    streak_days: int
    recent_badges: list[BadgeOut]
    opt_in: bool


class BadgesOut(OkOut):
    badges: list[BadgeOut]


class CourseProgressOut(CamelModel):
    course_id: str
    name: str
    completed: int
    total: int
    percent: int


class OverallProgressOut(CamelModel):
    completed: int
    total: int
    percent: int


class ProgressOut(OkOut):
    overall: OverallProgressOut
    subjects: list[CourseProgressOut]


class OptInIn(CamelModel):
    opt_in: StrictBool


class LeaderboardEntryOut(CamelModel):
    user_id: str
    name: str
    points: int
    top_badge: str


class LeaderboardOut(OkOut):
    entries: list[LeaderboardEntryOut]


def _badges(badges: list[Badge]) -> list[BadgeOut]:
    return [BadgeOut(label=b.label, type=b.type) for b in badges]


def _student_not_found(user_id: str) -> HTTPException:
    logger.warning("Unknown student user=%s", user_id)
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found.")


@router.get("/students/{user_id}/rewards", response_model=RewardsOut)
async def student_rewards(user_id: str, calculator: Calculator) -> RewardsOut:
    try:
        rewards = await calculator.rewards(user_id)
    except NotFoundError:
        raise _student_not_found(user_id) from None
    return RewardsOut(
        total_points=rewards.total_points,
        streak_days=rewards.streak_days,
        recent_badges=_badges(rewards.badges),
        opt_in=rewards.opt_in,
    )


@router.get("/students/{user_id}/badges", response_model=BadgesOut)
async def student_badges(user_id: str, calculator: Calculator) -> BadgesOut:
    try:
        badges = await calculator.badges(user_id)
    except NotFoundError:
        raise _student_not_found(user_id) from None
    return BadgesOut(badges=_badges(badges))


@router.get("/students/{user_id}/progress", response_model=ProgressOut)
async def student_progress(user_id: str, calculator: Calculator) -> ProgressOut:
    try:
        progress = await calculator.progress(user_id)
    except NotFoundError:
        raise _student_not_found(user_id) from None
    return ProgressOut(
        overall=OverallProgressOut(
            completed=progress.completed, total=progress.total, percent=progress.percent
        ),
        subjects=[
            CourseProgressOut(
                course_id=c.course_id,
                name=c.name,
                completed=c.completed,
                total=c.total,
                percent=c.percent,
            )
            for c in progress.courses
        ],
    )


@router.patch("/students/{user_id}/leaderboard-optin", response_model=OkOut)
async def leaderboard_opt_in(user_id: str, payload: OptInIn, builder: Builder) -> OkOut:
    try:
        await builder.set_opt_in(user_id, payload.opt_in)
    except NotFoundError:
        raise _student_not_found(user_id) from None
    await invalidate_leaderboards()
    return OkOut()


@router.get("/leaderboard", response_model=LeaderboardOut)
async def leaderboard(
    builder: Builder,
    user_id: Annotated[str, Query(alias="userId")] = "",
    scope: str = "class",
    timeframe: str = "all",
    subject: str | None = None,
) -> LeaderboardOut:
    user_id = user_id.strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId required")

    cache_key = leaderboard_key(user_id, scope, timeframe, subject)
    cached = await cache_service.get(cache_key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return LeaderboardOut(entries=[LeaderboardEntryOut(**e) for e in json.loads(cached)])
    CACHE_OPERATIONS.labels(operation="miss").inc()

    try:
        entries = await builder.build(user_id, scope, timeframe, subject or None)
    except ValidationError as e:
        logger.warning("Leaderboard request rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None
    except NotFoundError:
        raise _student_not_found(user_id) from None

    out = [
        LeaderboardEntryOut(
            user_id=e.user_id, name=e.name, points=e.points, top_badge=e.top_badge
        )
        for e in entries
    ]
    await cache_service.set(
        cache_key,
        json.dumps([e.model_dump() for e in out]),
        SETTINGS.leaderboard_cache_ttl,
    )
    return LeaderboardOut(entries=out)
