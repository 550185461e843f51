"""Prometheus counters recorded by the session and ledger services."""

from __future__ import annotations

from app.monitoring.prometheus_metrics import REGISTRY, PrometheusMetrics, prometheus_metrics


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_ledger_entry_counts_direction_and_volume() -> None:
    before_debit = _sample(
        "skillswap_ledger_entries_total", {"type": "spent", "direction": "debit"}
    )
    before_volume = _sample("skillswap_ledger_credits_moved_total", {"type": "spent"})

    prometheus_metrics.record_ledger_entry("spent", -20)

    assert (
        _sample("skillswap_ledger_entries_total", {"type": "spent", "direction": "debit"})
        == before_debit + 1
    )
    assert _sample("skillswap_ledger_credits_moved_total", {"type": "spent"}) == before_volume + 20


def test_session_transitions_and_conflicts() -> None:
    before = _sample("skillswap_session_transitions_total", {"transition": "cancelled"})
    before_conflicts = _sample("skillswap_scheduling_conflicts_total")

    prometheus_metrics.record_session_transition("cancelled")
    prometheus_metrics.record_scheduling_conflict()

    assert _sample("skillswap_session_transitions_total", {"transition": "cancelled"}) == before + 1
    assert _sample("skillswap_scheduling_conflicts_total") == before_conflicts + 1


def test_http_request_metrics() -> None:
    labels = {"method": "POST", "endpoint": "/api/v1/sessions"}
    before = _sample(
        "skillswap_http_requests_total", {**labels, "status_code": "201"}
    )

    prometheus_metrics.track_http_request_start("POST", "/api/v1/sessions")
    assert _sample("skillswap_http_requests_in_progress", labels) >= 1
    prometheus_metrics.track_http_request_end("POST", "/api/v1/sessions")
    prometheus_metrics.record_http_request("POST", "/api/v1/sessions", 0.02, 201)

    assert _sample("skillswap_http_requests_total", {**labels, "status_code": "201"}) == before + 1


def test_exposition_includes_recorded_series() -> None:
    prometheus_metrics.record_reconciliation("released")
    PrometheusMetrics._invalidate_cache()

    payload = prometheus_metrics.get_metrics().decode()

    assert 'skillswap_reservations_reconciled_total{outcome="released"}' in payload
    assert prometheus_metrics.get_content_type().startswith("text/plain")
