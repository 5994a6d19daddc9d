"""Explicit partial-failure handling for aggregates.

Points, badges, analytics and leaderboards are assembled from many
independent reads.  Each read runs through ``attempt()``, which returns
a ``SubResult``: the value, or the neutral fallback plus the error.  The
aggregate decides what to do with a failed piece; the failure itself is
always logged with its traceback and counted in
``aggregate_degradations_total``.

Enrollment and attempt recording never use this module: their errors
propagate to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from lms.core.metrics import AGGREGATE_DEGRADATIONS, AGGREGATE_STEPS

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SubResult(Generic[T]):
    value: T
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def attempt(
    component: str,
    step: str,
    fn: Callable[[], Awaitable[T]],
    fallback: T,
) -> SubResult[T]:
    AGGREGATE_STEPS.labels(component=component).inc()
    try:
        return SubResult(await fn())
    except Exception as e:
        AGGREGATE_DEGRADATIONS.labels(component=component, step=step).inc()
        logger.warning(
            "Degraded %s step=%s: %s; substituting %r",
            component,
            step,
            e,
            fallback,
            exc_info=True,
            extra={"component": component, "step": step},
        )
        return SubResult(fallback, e)
