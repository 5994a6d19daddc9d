"""SLO definitions for the lms service.

  availability           99.5% of requests return non-5xx
  latency_p95            p95 response time under 500ms
  aggregate_completeness 99% of aggregate sub-computations (points,
                         analytics, leaderboard peers) are answered from
                         real data rather than a degraded placeholder

The evaluators are pure functions over counter values so they can be
unit tested without Prometheus; /health feeds them from the in-process
registry.  Error budget = current - target: positive is healthy,
negative means the SLO is breached.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SLODefinition:
    name: str
    description: str
    target: float
    window: str


@dataclass(frozen=True, slots=True)
class SLOStatus:
    slo: SLODefinition
    current: float
    budget_remaining: float
    healthy: bool


AVAILABILITY_SLO = SLODefinition(
    name="availability",
    description="Percentage of non-5xx responses (successful requests)",
    target=99.5,
    window="30d",
)

LATENCY_SLO = SLODefinition(
    name="latency_p95",
    description="95th percentile response time under 500ms",
    target=95.0,
    window="30d",
)

AGGREGATE_COMPLETENESS_SLO = SLODefinition(
    name="aggregate_completeness",
    description="Aggregate sub-computations answered without degrading",
    target=99.0,
    window="7d",
)

ALL_SLOS = [AVAILABILITY_SLO, LATENCY_SLO, AGGREGATE_COMPLETENESS_SLO]


def _ratio_status(slo: SLODefinition, total: int, bad: int) -> SLOStatus:
    # No data yet counts as healthy.
    current = 100.0 if total == 0 else ((total - bad) / total) * 100
    return SLOStatus(
        slo=slo,
        current=round(current, 3),
        budget_remaining=round(current - slo.target, 3),
        healthy=current >= slo.target,
    )


def evaluate_availability(total_requests: int, error_requests: int) -> SLOStatus:
    """availability = (total - errors) / total x 100"""
    return _ratio_status(AVAILABILITY_SLO, total_requests, error_requests)


def evaluate_latency(p95_ms: float) -> SLOStatus:
    """Approximate share of requests under 500ms from a p95 estimate.

    p95 at or under the threshold maps to 95..100; above it the share
    falls off linearly toward 0.
    """
    threshold_ms = 500.0
    if p95_ms <= threshold_ms:
        current = min(95.0 + (threshold_ms - p95_ms) / threshold_ms * 5.0, 100.0)
    else:
        current = max(0.0, 95.0 - (p95_ms - threshold_ms) / threshold_ms * 95.0)

    return SLOStatus(
        slo=LATENCY_SLO,
        current=round(current, 3),
        budget_remaining=round(current - LATENCY_SLO.target, 3),
        healthy=current >= LATENCY_SLO.target,
    )


def evaluate_aggregate_completeness(total_steps: int, degraded_steps: int) -> SLOStatus:
    return _ratio_status(AGGREGATE_COMPLETENESS_SLO, total_steps, degraded_steps)
