"""Teacher analytics.

  GET /api/teacher/analytics?teacherId=&classId=       chart data + student table
  GET /api/teacher/analytics/csv?teacherId=&classId=   same table as CSV
  GET /api/teacher/quiz-analytics[/csv]                best-of quiz scores
  GET /api/teacher/assignment-analytics[/csv]          assignment submissions
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from lms.api.dependencies import get_teacher_analytics
from lms.api.schemas import CamelModel, OkOut
from lms.core.errors import ValidationError
from lms.services.reports import analytics_csv, assignment_report_csv, quiz_report_csv
from lms.services.teacher_analytics import (
    GRADE_BUCKETS,
    CourseworkAnalytics,
    ItemStat,
    TeacherAnalyticsAggregator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teacher", tags=["analytics"])

Aggregator = Annotated[TeacherAnalyticsAggregator, Depends(get_teacher_analytics)]
TeacherId = Annotated[str, Query(alias="teacherId")]
ClassId = Annotated[str | None, Query(alias="classId")]

R = TypeVar("R")


class DatasetOut(CamelModel):
    label: str
    data: list[int]


class ChartOut(CamelModel):
    labels: list[str]
    datasets: list[DatasetOut]


class StudentRowOut(CamelModel):
    student_id: str
    user_id: str
    name: str
    avg_score: int
    modules_completed: int
    modules_total: int
    time_on_task_min: int
    status: str


class SummaryOut(CamelModel):
    avg_score: int
    overall_completion: int
    total_students: int


class AnalyticsOut(OkOut):
    grade_distribution: ChartOut
    completion_rate: ChartOut
    at_risk: list[StudentRowOut]
    summary: SummaryOut


async def _build(
    build: Callable[[str, str | None], Awaitable[R]], teacher_id: str, class_id: str | None
) -> R:
    try:
        return await build(teacher_id, class_id or None)
    except ValidationError as e:
        logger.warning("Analytics request rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None


@router.get("/analytics", response_model=AnalyticsOut)
async def teacher_analytics(
    aggregator: Aggregator,
    teacher_id: TeacherId = "",
    class_id: ClassId = None,
) -> AnalyticsOut:
    analytics = await _build(aggregator.build, teacher_id, class_id)
    return AnalyticsOut(
        grade_distribution=ChartOut(
            labels=list(GRADE_BUCKETS),
            datasets=[DatasetOut(label="Students", data=analytics.grade_distribution)],
        ),
        completion_rate=ChartOut(
            labels=[c.label for c in analytics.completion_rate],
            datasets=[
                DatasetOut(
                    label="% Completion",
                    data=[c.percent for c in analytics.completion_rate],
                )
            ],
        ),
        # Every student row carries its status; the client filters "At Risk".
        at_risk=[
            StudentRowOut(
                student_id=s.student_id,
                user_id=s.user_id,
                name=s.name,
                avg_score=s.avg_score,
                modules_completed=s.modules_completed,
                modules_total=s.modules_total,
                time_on_task_min=s.time_on_task_min,
                status=s.status,
            )
            for s in analytics.students
        ],
        summary=SummaryOut(
            avg_score=analytics.summary.avg_score,
            overall_completion=analytics.summary.overall_completion,
            total_students=analytics.summary.total_students,
        ),
    )


@router.get("/analytics/csv")
async def teacher_analytics_csv(
    aggregator: Aggregator,
    teacher_id: TeacherId = "",
    class_id: ClassId = None,
) -> Response:
    analytics = await _build(aggregator.build, teacher_id, class_id)
    return _csv_response(
        analytics_csv(analytics), f"teacher_analytics_{teacher_id.strip()}.csv"
    )


class ProgressRowOut(CamelModel):
    class_name: str
    name: str
    student_id: str
    on_time_pct: int
    modules_completed: int
    total_modules: int
    status: str


class QuizRowOut(ProgressRowOut):
    avg_quiz_score: int
    quizzes_taken: int
    total_quizzes: int


class AssignmentRowOut(ProgressRowOut):
    avg_assignment_score: int
    assignments_submitted: int
    total_assignments: int


class ByQuizOut(CamelModel):
    labels: list[str]
    avg_scores: list[int]
    attempts: list[int]


class ByAssignmentOut(CamelModel):
    labels: list[str]
    avg_scores: list[int]
    submissions: list[int]


class ModulesSummaryOut(CamelModel):
    modules_completed: int
    total_modules: int
    modules_completed_pct: int


class QuizSummaryOut(ModulesSummaryOut):
    total_quizzes: int
    average_quiz_score: int
    pass_rate: int


class AssignmentSummaryOut(ModulesSummaryOut):
    total_assignments: int
    average_assignment_score: int
    on_time_rate: int


class QuizAnalyticsOut(OkOut):
    by_quiz: ByQuizOut
    summary: QuizSummaryOut
    progress: list[QuizRowOut]


class AssignmentAnalyticsOut(OkOut):
    by_assignment: ByAssignmentOut
    summary: AssignmentSummaryOut
    progress: list[AssignmentRowOut]


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _report_filename(prefix: str, teacher_id: str, class_id: str | None) -> str:
    suffix = f"_{class_id}" if class_id else ""
    return f"{prefix}_{teacher_id.strip()}{suffix}.csv"


@router.get("/quiz-analytics", response_model=QuizAnalyticsOut)
async def quiz_analytics(
    aggregator: Aggregator,
    teacher_id: TeacherId = "",
    class_id: ClassId = None,
) -> QuizAnalyticsOut:
    report: CourseworkAnalytics = await _build(aggregator.quiz_report, teacher_id, class_id)
    s = report.summary
    return QuizAnalyticsOut(
        by_quiz=ByQuizOut(
            labels=[i.label for i in report.items],
            avg_scores=[i.avg_score for i in report.items],
            attempts=[i.count for i in report.items],
        ),
        summary=QuizSummaryOut(
            total_quizzes=s.total_items,
            average_quiz_score=s.average_score,
            pass_rate=s.rate,
            modules_completed=s.modules_completed,
            total_modules=s.modules_total,
            modules_completed_pct=s.modules_completed_pct,
        ),
        progress=[
            QuizRowOut(
                class_name=r.class_name,
                name=r.name,
                student_id=r.student_id,
                avg_quiz_score=r.avg_score,
                quizzes_taken=r.taken,
                total_quizzes=r.total,
                on_time_pct=r.on_time_pct,
                modules_completed=r.modules_completed,
                total_modules=r.modules_total,
                status=r.status,
            )
            for r in report.students
        ],
    )


@router.get("/quiz-analytics/csv")
async def quiz_analytics_csv(
    aggregator: Aggregator,
    teacher_id: TeacherId = "",
    class_id: ClassId = None,
) -> Response:
    report = await _build(aggregator.quiz_report, teacher_id, class_id)
    return _csv_response(
        quiz_report_csv(report), _report_filename("quiz_analytics", teacher_id, class_id)
    )


@router.get("/assignment-analytics", response_model=AssignmentAnalyticsOut)
async def assignment_analytics(
    aggregator: Aggregator,
    teacher_id: TeacherId = "",
    class_id: ClassId = None,
) -> AssignmentAnalyticsOut:
    report: CourseworkAnalytics = await _build(
        aggregator.assignment_report, teacher_id, class_id
    )
    s = report.summary
    # Charts need at least one bar.
    items = report.items or [ItemStat(label="No assignments", avg_score=0, count=0)]
    return AssignmentAnalyticsOut(
        by_assignment=ByAssignmentOut(
            labels=[i.label for i in items],
            avg_scores=[i.avg_score for i in items],
            submissions=[i.count for i in items],
        ),
        summary=AssignmentSummaryOut(
            total_assignments=s.total_items,
            average_assignment_score=s.average_score,
            on_time_rate=s.rate,
            modules_completed=s.modules_completed,
            total_modules=s.modules_total,
            modules_completed_pct=s.modules_completed_pct,
        ),
        progress=[
            AssignmentRowOut(
                class_name=r.class_name,
                name=r.name,
                student_id=r.student_id,
                avg_assignment_score=r.avg_score,
                assignments_submitted=r.taken,
                total_assignments=r.total,
                on_time_pct=r.on_time_pct,
                modules_completed=r.modules_completed,
                total_modules=r.modules_total,
                status=r.status,
            )
            for r in report.students
        ],
    )


@router.get("/assignment-analytics/csv")
async def assignment_analytics_csv(
    aggregator: Aggregator,
    teacher_id: TeacherId = "",
    class_id: ClassId = None,
) -> Response:
    report = await _build(aggregator.assignment_report, teacher_id, class_id)
    return _csv_response(
        assignment_report_csv(report),
        _report_filename("assignment_analytics", teacher_id, class_id),
    )
