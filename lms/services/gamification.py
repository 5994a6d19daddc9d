"""Points, streaks and badges derived from a user's history.

Every number here is recomputed from the underlying records on each
call; nothing is cached on the user document.

POINTS
  +10   per completed module
  +N    per quiz, N = best attempt percent among attempts in the timeframe
  +20   per assignment submitted on or before its due date

STREAK
  Consecutive UTC days with any activity, counted back from today.  No
  activity today means a streak of 0.

BADGES (in display order; the first one is a user's "top badge")
  On-Time Achiever   3+ on-time assignment submissions
  Quiz Whiz          a best quiz percent of 90 or more
  Module Master      80%+ of enrolled modules completed, or 10+ completed

Each source is read through ``degrade.attempt``: a failed read counts as
zero for that source, is logged and shows up in
``aggregate_degradations_total{component="gamification"}``.  A valid
user therefore always gets an answer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Collection
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from lms.core.errors import NotFoundError, ValidationError
from lms.models.course import Assignment, Course, Submission
from lms.models.progress import Attempt, CompletedModule, QuizAttemptSummary, percent_of
from lms.models.user import User
from lms.services.chunking import gather_bounded, gather_chunks
from lms.services.degrade import attempt
from lms.services.lookups import courses_for_classes, enrolled_class_ids, get_user
from lms.store.base import DocumentStore, Filter, join

logger = logging.getLogger(__name__)

COMPONENT = "gamification"

MODULE_POINTS = 10
ON_TIME_POINTS = 20
ON_TIME_BADGE_THRESHOLD = 3
QUIZ_WHIZ_PERCENT = 90
MODULE_MASTER_PERCENT = 80
MODULE_MASTER_COUNT = 10
# Most recently published assignments considered per chunk of courses.
ASSIGNMENTS_PER_CHUNK = 100

TIMEFRAMES: dict[str, timedelta | None] = {
    "all": None,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


@dataclass(frozen=True, slots=True)
class Badge:
    label: str
    type: str


ON_TIME_ACHIEVER = Badge("On-Time Achiever", "success")
QUIZ_WHIZ = Badge("Quiz Whiz", "info")
MODULE_MASTER = Badge("Module Master", "warning")


@dataclass(frozen=True, slots=True)
class CourseProgress:
    course_id: str
    name: str
    completed: int
    total: int

    @property
    def percent(self) -> int:
        return percent_of(self.completed, self.total)


@dataclass(frozen=True, slots=True)
class Progress:
    courses: list[CourseProgress]

    @property
    def completed(self) -> int:
        return sum(c.completed for c in self.courses)

    @property
    def total(self) -> int:
        return sum(c.total for c in self.courses)

    @property
    def percent(self) -> int:
        return percent_of(self.completed, self.total)


@dataclass(frozen=True, slots=True)
class Rewards:
    total_points: int
    streak_days: int
    badges: list[Badge]
    opt_in: bool


def timeframe_start(timeframe: str | None, now: datetime | None = None) -> datetime | None:
    """Lower bound for a named timeframe; None means all time."""
    key = (timeframe or "all").strip().lower()
    if key not in TIMEFRAMES:
        raise ValidationError(
            f"timeframe must be one of {', '.join(TIMEFRAMES)} (got {timeframe!r})"
        )
    span = TIMEFRAMES[key]
    if span is None:
        return None
    return (now or datetime.now(UTC)) - span


def _in_timeframe(at: datetime | None, start: datetime | None, end: datetime | None) -> bool:
    """Inside [start, end]; everything counts when there is no start."""
    if start is None:
        return True
    return at is not None and at >= start and (end is None or at <= end)


def _in_courses(course_id: str | None, courses: set[str] | None) -> bool:
    # Records without a course id are never filtered out.
    return courses is None or course_id is None or course_id in courses


class GamificationCalculator:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    # -- shared reads --------------------------------------------------

    async def _enrolled_courses(self, user_id: str) -> list[Course]:
        return await courses_for_classes(
            self._store, await enrolled_class_ids(self._store, user_id)
        )

    async def _completed_modules(self, user_id: str) -> list[CompletedModule]:
        docs = await self._store.list_documents(join("users", user_id, "completedModules"))
        return [CompletedModule.from_doc(d) for d in docs]

    async def _summaries(self, user_id: str) -> list[QuizAttemptSummary]:
        docs = await self._store.list_documents(join("users", user_id, "quizAttempts"))
        return [QuizAttemptSummary.from_doc(d) for d in docs]

    async def _attempts(self, user_id: str, summary: QuizAttemptSummary) -> list[Attempt]:
        path = join("users", user_id, "quizAttempts", summary.doc_id, "attempts")
        return [Attempt.from_doc(d) for d in await self._store.list_documents(path)]

    async def _submissions(
        self, user_id: str, course_ids: list[str]
    ) -> AsyncIterator[tuple[Assignment, Submission]]:
        """The user's submissions to recent assignments of the given courses."""

        async def _fetch(batch: list[str]):
            return await self._store.query(
                "assignments",
                [Filter("courseId", "in", batch)],
                order_by="publishAt",
                descending=True,
                limit=ASSIGNMENTS_PER_CHUNK,
            )

        for docs in await gather_chunks(course_ids, _fetch):
            for doc in docs:
                sub = await self._store.get(
                    join("assignments", doc.id, "submissions", user_id)
                )
                if sub is not None:
                    yield Assignment.from_doc(doc), Submission.from_doc(sub)

    async def _course_ids(
        self, user_id: str, course_filter_ids: Collection[str] | None
    ) -> list[str]:
        if course_filter_ids is not None:
            return list(course_filter_ids)
        return [c.id for c in await self._enrolled_courses(user_id)]

    # -- points ----------------------------------------------------------

    async def compute_points(
        self,
        user_id: str,
        *,
        start: datetime | None = None,
        course_filter_ids: Collection[str] | None = None,
    ) -> int:
        courses = set(course_filter_ids) if course_filter_ids is not None else None
        end = self._clock() if start is not None else None

        async def _modules() -> int:
            return MODULE_POINTS * sum(
                1
                for m in await self._completed_modules(user_id)
                if _in_timeframe(m.completed_at, start, end)
                and _in_courses(m.course_id, courses)
            )

        async def _quizzes() -> int:
            summaries = [
                s for s in await self._summaries(user_id) if _in_courses(s.course_id, courses)
            ]

            async def _best(summary: QuizAttemptSummary) -> int:
                percents = [
                    a.percent
                    for a in await self._attempts(user_id, summary)
                    if _in_timeframe(a.submitted_at, start, end)
                ]
                return max(percents, default=0)

            return sum(await gather_bounded(summaries, _best))

        async def _assignments() -> int:
            points = 0
            course_ids = await self._course_ids(user_id, course_filter_ids)
            async for assignment, sub in self._submissions(user_id, course_ids):
                if _in_timeframe(sub.submitted_at, start, end) and sub.on_time(assignment.due_at):
                    points += ON_TIME_POINTS
            return points

        parts = await asyncio.gather(
            attempt(COMPONENT, "completed_modules", _modules, 0),
            attempt(COMPONENT, "quiz_attempts", _quizzes, 0),
            attempt(COMPONENT, "assignments", _assignments, 0),
        )
        return sum(p.value for p in parts)

    # -- streak ----------------------------------------------------------

    async def compute_streak_days(self, user_id: str) -> int:
        async def _module_days() -> set[date]:
            return {
                m.completed_at.date()
                for m in await self._completed_modules(user_id)
                if m.completed_at is not None
            }

        async def _attempt_days() -> set[date]:
            batches = await gather_bounded(
                await self._summaries(user_id),
                lambda s: self._attempts(user_id, s),
            )
            return {
                a.submitted_at.date()
                for batch in batches
                for a in batch
                if a.submitted_at is not None
            }

        async def _submission_days() -> set[date]:
            course_ids = await self._course_ids(user_id, None)
            return {
                sub.submitted_at.date()
                async for _, sub in self._submissions(user_id, course_ids)
                if sub.submitted_at is not None
            }

        parts = await asyncio.gather(
            attempt(COMPONENT, "completion_days", _module_days, set()),
            attempt(COMPONENT, "attempt_days", _attempt_days, set()),
            attempt(COMPONENT, "submission_days", _submission_days, set()),
        )
        days = set().union(*(p.value for p in parts))

        streak = 0
        day = self._clock().astimezone(UTC).date()
        while day in days:
            streak += 1
            day -= timedelta(days=1)
        return streak

    # -- badges ----------------------------------------------------------

    async def _course_progress(self, user_id: str, courses: list[Course]) -> list[CourseProgress]:
        completed_root = join("users", user_id, "completedModules")

        async def _one(course: Course) -> CourseProgress:
            modules, done = await asyncio.gather(
                self._store.query("modules", [Filter("courseId", "==", course.id)]),
                self._store.query(completed_root, [Filter("courseId", "==", course.id)]),
            )
            return CourseProgress(
                course_id=course.id,
                name=course.title,
                completed=len(done),
                total=len(modules),
            )

        return await gather_bounded(courses, _one)

    async def compute_badges(self, user_id: str) -> list[Badge]:
        async def _on_time() -> bool:
            count = 0
            course_ids = await self._course_ids(user_id, None)
            async for assignment, sub in self._submissions(user_id, course_ids):
                if sub.on_time(assignment.due_at):
                    count += 1
                    if count >= ON_TIME_BADGE_THRESHOLD:
                        return True
            return False

        async def _quiz_whiz() -> bool:
            return any(
                (s.best_percent or 0) >= QUIZ_WHIZ_PERCENT
                for s in await self._summaries(user_id)
            )

        async def _module_master() -> bool:
            progress = Progress(
                await self._course_progress(user_id, await self._enrolled_courses(user_id))
            )
            return (
                progress.percent >= MODULE_MASTER_PERCENT
                or progress.completed >= MODULE_MASTER_COUNT
            )

        on_time, whiz, master = await asyncio.gather(
            attempt(COMPONENT, "on_time_badge", _on_time, False),
            attempt(COMPONENT, "quiz_whiz_badge", _quiz_whiz, False),
            attempt(COMPONENT, "module_master_badge", _module_master, False),
        )
        earned = (
            (on_time.value, ON_TIME_ACHIEVER),
            (whiz.value, QUIZ_WHIZ),
            (master.value, MODULE_MASTER),
        )
        return [badge for ok, badge in earned if ok]

    # -- per-user views ------------------------------------------------

    async def _user(self, user_id: str) -> User:
        user = await get_user(self._store, user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def rewards(self, user_id: str) -> Rewards:
        """All-time points, streak and badges.  NotFoundError for unknown users."""
        user = await self._user(user_id)
        points, streak, badges = await asyncio.gather(
            self.compute_points(user.id),
            self.compute_streak_days(user.id),
            self.compute_badges(user.id),
        )
        return Rewards(
            total_points=points,
            streak_days=streak,
            badges=badges,
            opt_in=user.leaderboard_opt_in,
        )

    async def badges(self, user_id: str) -> list[Badge]:
        user = await self._user(user_id)
        return await self.compute_badges(user.id)

    async def progress(self, user_id: str) -> Progress:
        """Module completion per enrolled course.  Store errors propagate."""
        user = await self._user(user_id)
        courses = await self._enrolled_courses(user.id)
        return Progress(await self._course_progress(user.id, courses))


def top_badge(badges: list[Badge]) -> str:
    return badges[0].label if badges else "-"
