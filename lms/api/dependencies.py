"""FastAPI dependency providers.

One document store per process: Firestore when FIRESTORE_PROJECT is
set, the in-memory store otherwise.  Components are cheap wrappers
around the store, so each request gets a fresh instance.

Tests reset ``document_store`` between cases (see tests/conftest.py) or
swap a provider with ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from lms.db.firestore import firestore_client
from lms.services.enrollment import EnrollmentCoordinator
from lms.services.gamification import GamificationCalculator
from lms.services.grades import GradeRecorder
from lms.services.leaderboard import LeaderboardBuilder
from lms.services.quiz_attempts import QuizAttemptRecorder
from lms.services.roles import RoleService
from lms.services.teacher_analytics import TeacherAnalyticsAggregator
from lms.store.base import DocumentStore
from lms.store.firestore import FirestoreDocumentStore
from lms.store.memory import InMemoryDocumentStore

if firestore_client is not None:
    document_store: DocumentStore = FirestoreDocumentStore(firestore_client)
else:
    document_store = InMemoryDocumentStore()


def get_store() -> DocumentStore:
    return document_store


Store = Annotated[DocumentStore, Depends(get_store)]


def get_enrollment(store: Store) -> EnrollmentCoordinator:
    return EnrollmentCoordinator(store)


def get_quiz_attempts(store: Store) -> QuizAttemptRecorder:
    return QuizAttemptRecorder(store)


def get_grades(store: Store) -> GradeRecorder:
    return GradeRecorder(store)


def get_roles(store: Store) -> RoleService:
    return RoleService(store)


def get_gamification(store: Store) -> GamificationCalculator:
    return GamificationCalculator(store)


def get_teacher_analytics(store: Store) -> TeacherAnalyticsAggregator:
    return TeacherAnalyticsAggregator(store)


def get_leaderboard(store: Store) -> LeaderboardBuilder:
    return LeaderboardBuilder(store)
