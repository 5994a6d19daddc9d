"""Prometheus request metrics.

The client library's default registry is global and counters only go
up, so every assertion is on the delta around the action.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    after = _get_sample("http_requests_total", labels)
    assert after - before >= 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    after = _get_sample("http_request_duration_seconds_count", labels)
    assert after - before >= 1


def test_endpoint_label_is_route_template(client: TestClient) -> None:
    """Ids in the path collapse into one series per route."""
    labels = {
        "method": "GET",
        "endpoint": "/api/students/{user_id}/badges",
        "status_code": "404",
    }
    before = _get_sample("http_requests_total", labels)
    client.get("/api/students/nobody-1/badges")
    client.get("/api/students/nobody-2/badges")
    after = _get_sample("http_requests_total", labels)
    assert after - before == 2
    assert (
        _get_sample(
            "http_requests_total",
            {
                "method": "GET",
                "endpoint": "/api/students/nobody-1/badges",
                "status_code": "404",
            },
        )
        == 0.0
    )


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "http_request_duration_seconds" in resp.text
    assert "aggregate_degradations_total" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    after = _get_sample("http_requests_total", labels)
    assert after == before
