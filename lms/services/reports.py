"""Flat exports of teacher analytics."""

from __future__ import annotations

import csv
import io

from lms.services.teacher_analytics import CourseworkAnalytics, TeacherAnalytics

CSV_HEADER = (
    "Student",
    "Student ID",
    "Avg Score",
    "Modules Completed",
    "Modules Total",
    "Time on Task (min)",
    "Status",
)

QUIZ_CSV_HEADER = (
    "Class",
    "Student",
    "Student ID",
    "Avg Quiz Score (%)",
    "Quizzes Taken",
    "Total Quizzes",
    "On-time (%)",
    "Modules Completed",
    "Total Modules",
    "Status",
)

ASSIGNMENT_CSV_HEADER = (
    "Class",
    "Student",
    "Student ID",
    "Avg Assignment Score (%)",
    "Assignments Submitted",
    "Total Assignments",
    "On-time (%)",
    "Modules Completed",
    "Total Modules",
    "Status",
)


def analytics_csv(analytics: TeacherAnalytics) -> str:
    """One row per student, in the same order as ``analytics.students``."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for s in analytics.students:
        writer.writerow(
            [
                s.name,
                s.student_id,
                s.avg_score,
                s.modules_completed,
                s.modules_total,
                s.time_on_task_min,
                s.status,
            ]
        )
    return buf.getvalue()


def _coursework_csv(
    report: CourseworkAnalytics, summary_labels: tuple[str, str, str], header: tuple[str, ...]
) -> str:
    """Summary block, a blank line, then one row per student."""
    s = report.summary
    total_label, average_label, rate_label = summary_labels
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["Summary"])
    writer.writerow([total_label, s.total_items])
    writer.writerow([average_label, s.average_score])
    writer.writerow([rate_label, s.rate])
    writer.writerow(["Modules Completed", f"{s.modules_completed}/{s.modules_total}"])
    writer.writerow(["Modules Completed (%)", s.modules_completed_pct])
    writer.writerow([])
    writer.writerow(header)
    for r in report.students:
        writer.writerow(
            [
                r.class_name,
                r.name,
                r.student_id,
                r.avg_score,
                r.taken,
                r.total,
                r.on_time_pct,
                r.modules_completed,
                r.modules_total,
                r.status,
            ]
        )
    return buf.getvalue()


def quiz_report_csv(report: CourseworkAnalytics) -> str:
    return _coursework_csv(
        report,
        ("Total Quizzes", "Average Quiz Score (%)", "Pass Rate (%)"),
        QUIZ_CSV_HEADER,
    )


def assignment_report_csv(report: CourseworkAnalytics) -> str:
    return _coursework_csv(
        report,
        (
            "Total Assignments",
            "Average Assignment Score (%)",
            "On-time Submission Rate (%)",
        ),
        ASSIGNMENT_CSV_HEADER,
    )
