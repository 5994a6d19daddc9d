"""Health and readiness endpoints.

  /health  liveness: always 200 while the process answers; ``status``
           says "ok" or "degraded" and ``checks`` lists each backing
           service (document store, redis), plus current SLO figures
  /ready   readiness: 503 when the document store is unreachable, so the
           load balancer stops routing here without restarting us
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from prometheus_client import REGISTRY

from lms.core.slo import (
    evaluate_aggregate_completeness,
    evaluate_availability,
    evaluate_latency,
)
from lms.db.firestore import firestore_client
from lms.db.redis import redis_status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _sum_counter(metric_name: str, label_filter: dict | None = None) -> float:
    """Sum a counter's samples across every label combination matching the filter."""
    total = 0.0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name != metric_name:
                continue
            if label_filter and not all(
                sample.labels.get(k) == v for k, v in label_filter.items()
            ):
                continue
            total += sample.value
    return total


async def _store_check() -> str:
    if firestore_client is None:
        return "in_memory"
    try:
        await firestore_client.collection("counters").limit(1).get()
        return "ok"
    except Exception:
        logger.warning("Document store health check failed", exc_info=True)
        return "degraded"


@router.get("/health")
async def health() -> dict:
    """Liveness probe + dependency status + SLO compliance.

    The SLO figures come from this process's counters only and reset on
    restart; Prometheus holds the fleet-wide view.
    """
    checks = {"store": await _store_check(), "redis": await redis_status()}
    overall = "degraded" if "degraded" in checks.values() else "ok"

    total_all = _sum_counter("http_requests_total")
    total_5xx = sum(
        _sum_counter("http_requests_total", {"status_code": str(code)})
        for code in range(500, 512)
    )

    # Crude p95: twice the mean.  Real percentiles need histogram_quantile().
    duration_sum = _sum_counter("http_request_duration_seconds_sum")
    duration_count = _sum_counter("http_request_duration_seconds_count")
    p95_estimate_ms = (duration_sum / duration_count) * 1000 * 2.0 if duration_count else 0.0

    statuses = [
        evaluate_availability(int(total_all), int(total_5xx)),
        evaluate_latency(p95_estimate_ms),
        evaluate_aggregate_completeness(
            int(_sum_counter("aggregate_steps_total")),
            int(_sum_counter("aggregate_degradations_total")),
        ),
    ]
    slos = {
        s.slo.name: {"current": s.current, "target": s.slo.target, "healthy": s.healthy}
        for s in statuses
    }

    return {"status": overall, "checks": checks, "slos": slos}


@router.get("/ready")
async def ready() -> Response:
    if await _store_check() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
