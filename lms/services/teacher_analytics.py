"""Per-teacher class analytics: grade histogram, completion per class, and
a per-student table with an at-risk flag.

Pipeline
--------
1. The teacher's classes (newest first), optionally narrowed to one.
2. The teacher's authored courses, indexed by the classes they are
   assigned to.
3. Modules and quizzes of those courses (chunked "in" queries).
4. Every class roster, then roster ids -> user documents (chunked
   ``studentId in`` queries).
5. Per student: enrolled courses via class membership, completed vs
   available modules, time on task over the first few quizzes, average
   score and at-risk status.

``quiz_report`` and ``assignment_report`` reuse steps 1-4 and replace
step 5: the best attempt per quiz (or the submission per assignment)
feeds a per-student row and a per-item average.  Submissions are looked
up by studentId, then user id, then the student's grade mirror.

Top-level reads (classes, courses) propagate their errors.  Everything
after that degrades per piece through ``degrade.attempt``: a failed
roster reads as empty, a failed per-student query as zero.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field

from lms.core.errors import ValidationError
from lms.models.classroom import Classroom
from lms.models.course import Assignment, Course, Module, Quiz, Submission
from lms.models.fields import as_datetime, as_number, round_half_up
from lms.models.progress import Attempt, percent_of
from lms.models.user import User
from lms.services.chunking import gather_bounded, gather_chunks, unique
from lms.services.degrade import attempt
from lms.store.base import DocumentStore, Filter, join

logger = logging.getLogger(__name__)

COMPONENT = "teacher_analytics"

GRADE_BUCKETS = ("0-59", "60-69", "70-79", "80-89", "90-100")
AT_RISK_SCORE = 75
AT_RISK_COMPLETION = 50
# Quizzes per student inspected for time on task.
TIME_ON_TASK_QUIZZES = 12
MAX_STUDENTS = 500
# Per-student read caps for the quiz and assignment reports.
QUIZZES_PER_STUDENT = 50
ASSIGNMENTS_PER_STUDENT = 200


def grade_bucket(score: float) -> int:
    """Index into GRADE_BUCKETS for a score, clamped to 0..100."""
    value = max(0, min(100, round_half_up(score)))
    if value < 60:
        return 0
    return min(4, value // 10 - 5)


@dataclass(frozen=True, slots=True)
class StudentAnalytics:
    student_id: str
    user_id: str
    name: str
    avg_score: int
    modules_completed: int
    modules_total: int
    time_on_task_min: int
    # Unrounded; avg_score is for display.
    raw_score: float | None = None

    @property
    def completion_percent(self) -> int:
        return percent_of(self.modules_completed, self.modules_total)

    @property
    def at_risk(self) -> bool:
        score = self.avg_score if self.raw_score is None else self.raw_score
        return score < AT_RISK_SCORE or self.completion_percent < AT_RISK_COMPLETION

    @property
    def status(self) -> str:
        return "At Risk" if self.at_risk else "On Track"


@dataclass(frozen=True, slots=True)
class ClassCompletion:
    class_id: str
    label: str
    percent: int


@dataclass(frozen=True, slots=True)
class AnalyticsSummary:
    avg_score: int
    overall_completion: int
    total_students: int


@dataclass(frozen=True, slots=True)
class TeacherAnalytics:
    summary: AnalyticsSummary
    grade_distribution: list[int]
    completion_rate: list[ClassCompletion]
    students: list[StudentAnalytics] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CourseworkRow:
    """One student's line in the quiz or assignment report."""

    class_name: str
    name: str
    student_id: str
    avg_score: int
    # Quizzes attempted, or assignments submitted.
    taken: int
    total: int
    on_time_pct: int
    modules_completed: int
    modules_total: int
    raw_score: float = 0.0

    @property
    def completion_percent(self) -> int:
        return percent_of(self.modules_completed, self.modules_total)

    @property
    def passed(self) -> bool:
        return self.raw_score >= AT_RISK_SCORE

    @property
    def at_risk(self) -> bool:
        return not self.passed or self.completion_percent < AT_RISK_COMPLETION

    @property
    def status(self) -> str:
        return "At Risk" if self.at_risk else "On Track"


@dataclass(frozen=True, slots=True)
class ItemStat:
    label: str
    avg_score: int
    # Attempts for a quiz, submissions for an assignment.
    count: int


@dataclass(frozen=True, slots=True)
class CourseworkSummary:
    total_items: int
    average_score: int
    # Pass rate for quizzes, mean on-time rate for assignments.
    rate: int
    modules_completed: int
    modules_total: int

    @property
    def modules_completed_pct(self) -> int:
        return percent_of(self.modules_completed, self.modules_total)


@dataclass(frozen=True, slots=True)
class CourseworkAnalytics:
    summary: CourseworkSummary
    items: list[ItemStat]
    students: list[CourseworkRow] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Scored:
    item_id: str
    percent: int | None
    count: int
    on_time: bool
    has_due: bool


@dataclass(slots=True)
class _Context:
    classes: list[Classroom]
    class_courses: dict[str, list[str]]
    modules: dict[str, list[Module]]
    quizzes: dict[str, list[Quiz]]
    rosters: dict[str, list[str]]
    users: dict[str, User]


def _score(user: User) -> float:
    if user.average_quiz_score is not None:
        return user.average_quiz_score
    if user.average_assignment_grade is not None:
        return user.average_assignment_grade
    return 0.0


def normalize_percent(data: dict, points: float | None) -> int | None:
    """Grade (or score) as a percentage of points; raw when points are unset."""
    for key in ("grade", "score"):
        value = as_number(data.get(key))
        if value is not None:
            if points is not None and points > 0:
                return round_half_up(value / points * 100)
            return round_half_up(value)
    return None


def _mean(values: list[float]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def _item_stats(titles: dict[str, str], scored: list[_Scored]) -> list[ItemStat]:
    """Per-item mean of student percents, ordered by title."""
    percents: dict[str, list[int]] = defaultdict(list)
    counts: dict[str, int] = defaultdict(int)
    for s in scored:
        counts[s.item_id] += s.count
        if s.percent is not None:
            percents[s.item_id].append(s.percent)
    ordered = sorted(counts, key=lambda i: (titles[i].casefold(), i))
    return [
        ItemStat(label=titles[i], avg_score=_mean(percents[i]), count=counts[i])
        for i in ordered
    ]


class TeacherAnalyticsAggregator:
    def __init__(self, store: DocumentStore, *, max_students: int = MAX_STUDENTS) -> None:
        self._store = store
        self._max_students = max_students

    async def _by_course(self, collection: str, course_ids: list[str], parse: Callable):
        async def _fetch(batch: list[str]):
            return await self._store.query(collection, [Filter("courseId", "in", batch)])

        grouped: dict[str, list] = defaultdict(list)
        for docs in await gather_chunks(course_ids, _fetch):
            for doc in docs:
                item = parse(doc)
                grouped[item.course_id].append(item)
        return dict(grouped)

    async def _roster(self, classroom: Classroom) -> list[str]:
        docs = await self._store.list_documents(join("classes", classroom.id, "roster"))
        if classroom.students != len(docs):
            logger.warning(
                "Class %s student count %d disagrees with roster size %d",
                classroom.id,
                classroom.students,
                len(docs),
            )
        return [d.id for d in docs]

    async def _users_by_student_id(self, student_ids: list[str]) -> dict[str, User]:
        async def _fetch(batch: list[str]):
            return await self._store.query("users", [Filter("studentId", "in", batch)])

        users: dict[str, User] = {}
        for docs in await gather_chunks(student_ids, _fetch):
            for doc in docs:
                user = User.from_doc(doc)
                if user.student_id:
                    users[user.student_id] = user
        return users

    async def _completed_in(self, user_id: str, course_ids: list[str], *, any_: bool = False) -> int:
        root = join("users", user_id, "completedModules")

        async def _fetch(batch: list[str]):
            return await self._store.query(
                root, [Filter("courseId", "in", batch)], limit=1 if any_ else None
            )

        return sum(len(docs) for docs in await gather_chunks(course_ids, _fetch))

    async def _time_on_task(self, user_id: str, quiz_ids: list[str]) -> int:
        seconds: list[float] = []
        for quiz_id in quiz_ids[:TIME_ON_TASK_QUIZZES]:
            docs = await self._store.list_documents(
                join("users", user_id, "quizAttempts", quiz_id, "attempts")
            )
            for doc in docs:
                taken = as_number(doc.get("timeTakenSeconds"))
                if taken is not None and taken > 0:
                    seconds.append(taken)
        mean = sum(seconds) / len(seconds) if seconds else 0
        return round_half_up(mean / 60)

    async def _load(self, teacher_id: str, class_id: str | None) -> _Context:
        class_docs = await self._store.query(
            "classes",
            [Filter("teacherId", "==", teacher_id)],
            order_by="createdAt",
            descending=True,
        )
        classes = [Classroom.from_doc(d) for d in class_docs]
        if class_id:
            classes = [c for c in classes if c.id == class_id]

        course_docs = await self._store.query(
            "courses", [Filter("uploadedBy", "==", teacher_id)]
        )
        courses = [Course.from_doc(d) for d in course_docs]
        course_ids = [c.id for c in courses]

        class_courses: dict[str, list[str]] = defaultdict(list)
        for course in courses:
            for cid in course.assigned_classes:
                if class_id and cid != class_id:
                    continue
                class_courses[cid].append(course.id)

        modules, quizzes, rosters = await asyncio.gather(
            attempt(
                COMPONENT,
                "modules",
                lambda: self._by_course("modules", course_ids, Module.from_doc),
                {},
            ),
            attempt(
                COMPONENT,
                "quizzes",
                lambda: self._by_course("quizzes", course_ids, Quiz.from_doc),
                {},
            ),
            gather_bounded(
                classes,
                lambda c: attempt(COMPONENT, "roster", lambda: self._roster(c), []),
            ),
        )
        roster_by_class = {c.id: r.value for c, r in zip(classes, rosters)}
        all_ids = unique(sid for ids in roster_by_class.values() for sid in ids)
        users = await attempt(
            COMPONENT, "roster_users", lambda: self._users_by_student_id(all_ids), {}
        )
        return _Context(
            classes=classes,
            class_courses=dict(class_courses),
            modules=modules.value,
            quizzes=quizzes.value,
            rosters=roster_by_class,
            users=users.value,
        )

    def _resolved(self, ctx: _Context, teacher_id: str) -> list[tuple[str, User]]:
        """Roster ids that resolve to a user, in class order, capped."""
        all_ids = unique(sid for c in ctx.classes for sid in ctx.rosters.get(c.id, ()))
        resolved = [(sid, ctx.users[sid]) for sid in all_ids if sid in ctx.users]
        if len(resolved) > self._max_students:
            logger.info(
                "Teacher %s analytics truncated to %d of %d students",
                teacher_id,
                self._max_students,
                len(resolved),
            )
            resolved = resolved[: self._max_students]
        return resolved

    @staticmethod
    def _scope(ctx: _Context, sid: str) -> tuple[list[Classroom], list[str]]:
        classes = [c for c in ctx.classes if sid in ctx.rosters.get(c.id, ())]
        course_ids = unique(cid for c in classes for cid in ctx.class_courses.get(c.id, ()))
        return classes, course_ids

    async def _student(self, ctx: _Context, sid: str, user: User) -> StudentAnalytics:
        _, course_ids = self._scope(ctx, sid)
        modules_total = sum(len(ctx.modules.get(cid, ())) for cid in course_ids)
        quiz_ids = [q.id for cid in course_ids for q in ctx.quizzes.get(cid, ())]

        completed, minutes = await asyncio.gather(
            attempt(COMPONENT, "completions", lambda: self._completed_in(user.id, course_ids), 0),
            attempt(COMPONENT, "time_on_task", lambda: self._time_on_task(user.id, quiz_ids), 0),
        )
        score = _score(user)
        return StudentAnalytics(
            student_id=user.student_id or sid,
            user_id=user.id,
            name=user.name,
            avg_score=round_half_up(score),
            modules_completed=completed.value,
            modules_total=modules_total,
            time_on_task_min=minutes.value,
            raw_score=score,
        )

    async def _class_completion(self, ctx: _Context, classroom: Classroom) -> ClassCompletion:
        roster = ctx.rosters.get(classroom.id, [])
        course_ids = ctx.class_courses.get(classroom.id, [])

        async def _has_any(sid: str) -> bool:
            user = ctx.users.get(sid)
            if user is None or not course_ids:
                return False
            result = await attempt(
                COMPONENT,
                "class_completion",
                lambda: self._completed_in(user.id, course_ids, any_=True),
                0,
            )
            return result.value > 0

        flags = await gather_bounded(roster, _has_any)
        return ClassCompletion(
            class_id=classroom.id,
            label=classroom.label,
            percent=percent_of(sum(flags), len(roster)),
        )

    async def build(self, teacher_id: str, class_id: str | None = None) -> TeacherAnalytics:
        teacher_id = _require_teacher(teacher_id)
        ctx = await self._load(teacher_id, class_id)
        resolved = self._resolved(ctx, teacher_id)

        students = await gather_bounded(resolved, lambda pair: self._student(ctx, *pair))
        completion = await gather_bounded(
            ctx.classes, lambda c: self._class_completion(ctx, c)
        )

        buckets = [0] * len(GRADE_BUCKETS)
        for s in students:
            buckets[grade_bucket(s.avg_score)] += 1

        summary = AnalyticsSummary(
            avg_score=(
                round_half_up(sum(s.avg_score for s in students) / len(students))
                if students
                else 0
            ),
            overall_completion=percent_of(
                sum(s.modules_completed for s in students),
                sum(s.modules_total for s in students),
            ),
            total_students=sum(len(ctx.rosters.get(c.id, ())) for c in ctx.classes),
        )
        logger.info(
            "Teacher analytics teacher=%s classes=%d students=%d",
            teacher_id,
            len(ctx.classes),
            len(students),
        )
        return TeacherAnalytics(
            summary=summary,
            grade_distribution=buckets,
            completion_rate=completion,
            students=sorted(students, key=lambda s: s.name.casefold()),
        )

    # Quiz and assignment reports

    async def _quiz_scored(self, user_id: str, quiz: Quiz) -> _Scored | None:
        docs = await self._store.list_documents(
            join("users", user_id, "quizAttempts", quiz.id, "attempts")
        )
        if not docs:
            return None
        attempts = [Attempt.from_doc(d) for d in docs]
        due = quiz.due_at
        return _Scored(
            item_id=quiz.id,
            percent=max(a.percent for a in attempts),
            count=len(attempts),
            # Once per quiz, however many attempts beat the deadline.
            on_time=due is not None
            and any(a.submitted_at is not None and a.submitted_at <= due for a in attempts),
            has_due=due is not None,
        )

    async def _quiz_row(
        self, ctx: _Context, sid: str, user: User
    ) -> tuple[CourseworkRow, list[_Scored]]:
        classes, course_ids = self._scope(ctx, sid)
        quizzes = [q for cid in course_ids for q in ctx.quizzes.get(cid, ())]

        completed = await attempt(
            COMPONENT, "completions", lambda: self._completed_in(user.id, course_ids), 0
        )
        results = await gather_bounded(
            quizzes[:QUIZZES_PER_STUDENT],
            lambda q: attempt(
                COMPONENT, "quiz_attempts", lambda: self._quiz_scored(user.id, q), None
            ),
        )
        scored = [r.value for r in results if r.value is not None]
        with_due = [s for s in scored if s.has_due]
        bests = [s.percent for s in scored if s.percent is not None]
        raw = sum(bests) / len(bests) if bests else 0.0
        row = CourseworkRow(
            class_name=classes[0].label if classes else "",
            name=user.name,
            student_id=user.student_id or sid,
            avg_score=round_half_up(raw),
            taken=len(scored),
            total=len(quizzes),
            on_time_pct=percent_of(sum(s.on_time for s in with_due), len(with_due)),
            modules_completed=completed.value,
            modules_total=sum(len(ctx.modules.get(cid, ())) for cid in course_ids),
            raw_score=raw,
        )
        return row, scored

    async def _submission(self, assignment: Assignment, sid: str, user: User) -> dict | None:
        """Submission keyed by studentId, then user id, then the grade mirror."""
        for key in unique([sid, user.id]):
            doc = await self._store.get(join("assignments", assignment.id, "submissions", key))
            if doc is not None:
                return doc.data
        doc = await self._store.get(join("users", user.id, "assignmentGrades", assignment.id))
        if doc is None:
            return None
        return {
            "grade": doc.data.get("grade"),
            "submittedAt": doc.data.get("submittedAt") or doc.data.get("gradedAt"),
        }

    async def _assignment_scored(
        self, assignment: Assignment, sid: str, user: User
    ) -> _Scored | None:
        data = await self._submission(assignment, sid, user)
        if data is None:
            return None
        sub = Submission(user_id=user.id, submitted_at=as_datetime(data.get("submittedAt")))
        return _Scored(
            item_id=assignment.id,
            percent=normalize_percent(data, assignment.points),
            count=1,
            on_time=sub.on_time(assignment.due_at),
            has_due=assignment.due_at is not None,
        )

    async def _assignment_row(
        self,
        ctx: _Context,
        assignments: dict[str, list[Assignment]],
        sid: str,
        user: User,
    ) -> tuple[CourseworkRow, list[_Scored]]:
        classes, course_ids = self._scope(ctx, sid)
        mine = [a for cid in course_ids for a in assignments.get(cid, ())]

        completed = await attempt(
            COMPONENT, "completions", lambda: self._completed_in(user.id, course_ids), 0
        )
        results = await gather_bounded(
            mine[:ASSIGNMENTS_PER_STUDENT],
            lambda a: attempt(
                COMPONENT, "submissions", lambda: self._assignment_scored(a, sid, user), None
            ),
        )
        scored = [r.value for r in results if r.value is not None]
        percents = [s.percent for s in scored if s.percent is not None]
        raw = sum(percents) / len(percents) if percents else 0.0
        row = CourseworkRow(
            class_name=classes[0].label if classes else "",
            name=user.name,
            student_id=user.student_id or sid,
            avg_score=round_half_up(raw),
            taken=len(scored),
            total=len(mine),
            on_time_pct=percent_of(sum(s.on_time for s in scored), len(scored)),
            modules_completed=completed.value,
            modules_total=sum(len(ctx.modules.get(cid, ())) for cid in course_ids),
            raw_score=raw,
        )
        return row, scored

    async def quiz_report(
        self, teacher_id: str, class_id: str | None = None
    ) -> CourseworkAnalytics:
        """Best attempt per quiz per student, rolled up per student and per quiz."""
        teacher_id = _require_teacher(teacher_id)
        ctx = await self._load(teacher_id, class_id)
        pairs = await gather_bounded(
            self._resolved(ctx, teacher_id), lambda p: self._quiz_row(ctx, *p)
        )
        rows = [row for row, _ in pairs]
        titles = {q.id: q.title or f"Quiz {q.id[:6]}" for qs in ctx.quizzes.values() for q in qs}
        items = _item_stats(titles, [s for _, scored in pairs for s in scored])
        logger.info(
            "Quiz report teacher=%s quizzes=%d students=%d", teacher_id, len(items), len(rows)
        )
        return CourseworkAnalytics(
            summary=_coursework_summary(
                rows, items, rate=percent_of(sum(r.passed for r in rows), len(rows))
            ),
            items=items,
            students=_by_class_then_name(rows),
        )

    async def assignment_report(
        self, teacher_id: str, class_id: str | None = None
    ) -> CourseworkAnalytics:
        """Submitted assignments per student, rolled up per student and per assignment."""
        teacher_id = _require_teacher(teacher_id)
        ctx = await self._load(teacher_id, class_id)
        course_ids = unique(cid for ids in ctx.class_courses.values() for cid in ids)
        assignments = await attempt(
            COMPONENT,
            "assignments",
            lambda: self._by_course("assignments", course_ids, Assignment.from_doc),
            {},
        )
        pairs = await gather_bounded(
            self._resolved(ctx, teacher_id),
            lambda p: self._assignment_row(ctx, assignments.value, *p),
        )
        rows = [row for row, _ in pairs]
        titles = {
            a.id: a.title or f"Assignment {a.id[:6]}"
            for items in assignments.value.values()
            for a in items
        }
        items = _item_stats(titles, [s for _, scored in pairs for s in scored])
        logger.info(
            "Assignment report teacher=%s assignments=%d students=%d",
            teacher_id,
            len(items),
            len(rows),
        )
        return CourseworkAnalytics(
            summary=_coursework_summary(rows, items, rate=_mean([r.on_time_pct for r in rows])),
            items=items,
            students=_by_class_then_name(rows),
        )


def _require_teacher(teacher_id: str) -> str:
    teacher_id = (teacher_id or "").strip()
    if not teacher_id:
        raise ValidationError("teacherId is required")
    return teacher_id


def _coursework_summary(
    rows: list[CourseworkRow], items: list[ItemStat], *, rate: int
) -> CourseworkSummary:
    return CourseworkSummary(
        total_items=len(items),
        average_score=_mean([r.avg_score for r in rows]),
        rate=rate,
        modules_completed=sum(r.modules_completed for r in rows),
        modules_total=sum(r.modules_total for r in rows),
    )


def _by_class_then_name(rows: list[CourseworkRow]) -> list[CourseworkRow]:
    return sorted(rows, key=lambda r: (r.class_name.casefold(), r.name.casefold()))
