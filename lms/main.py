from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lms.api.analytics import router as analytics_router
from lms.api.classes import router as classes_router
from lms.api.grades import router as grades_router
from lms.api.health import router as health_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.api.quizzes import router as quizzes_router
from lms.api.students import router as students_router
from lms.api.users import router as users_router
from lms.core.config import SETTINGS
from lms.core.errors import TransientStoreError
from lms.core.logging import setup_logging
from lms.db.firestore import lifespan_firestore
from lms.db.redis import lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_firestore():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="lms",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first: RequestContext -> Metrics -> CORS -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(TransientStoreError)
async def store_unavailable(request: Request, exc: TransientStoreError) -> JSONResponse:
    logger.warning("Store unavailable for %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage is temporarily unavailable; try again."},
        headers={"Retry-After": "1"},
    )


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(classes_router)
app.include_router(quizzes_router)
app.include_router(grades_router)
app.include_router(analytics_router)
app.include_router(students_router)
app.include_router(users_router)

logger.info(
    "lms started  env=%s log_level=%s port=%d docs=%s store=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "firestore" if SETTINGS.firestore_project else "in_memory",
)
