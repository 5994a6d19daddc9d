"""Firestore client management.

Same pattern as redis.py: when FIRESTORE_PROJECT is configured we create
an async Firestore client at import time; when it is not (local dev,
tests) ``firestore_client`` is None and the service runs on the
in-memory document store instead.

Credentials come from the standard Google environment
(GOOGLE_APPLICATION_CREDENTIALS or the runtime's service account), or
from FIRESTORE_EMULATOR_HOST when pointing at the local emulator.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from google.cloud import firestore

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.firestore_project:
    firestore_client: firestore.AsyncClient | None = firestore.AsyncClient(
        project=SETTINGS.firestore_project
    )
else:
    firestore_client = None


@asynccontextmanager
async def lifespan_firestore():
    """Startup check for Firestore.  Mirrors lifespan_redis()."""
    if firestore_client is None:
        logger.info(
            "No FIRESTORE_PROJECT configured — using the in-memory document store"
        )
        yield
        return

    try:
        await firestore_client.collection("counters").limit(1).get()
        logger.info("Firestore reachable: project=%s", SETTINGS.firestore_project)
    except Exception:
        # Keep serving; store calls surface TransientStoreError (503) until
        # the backend recovers.
        logger.exception("Firestore check failed on startup")

    yield
    logger.info("Firestore client released")
