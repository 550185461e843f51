"""
Prometheus metrics module for SkillSwap.

This module provides Prometheus-compatible metrics by leveraging existing
@measure_operation performance data alongside session and ledger counters.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "skillswap_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "skillswap_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "skillswap_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# HTTP
http_requests_total = Counter(
    "skillswap_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

http_request_duration_seconds = Histogram(
    "skillswap_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    registry=REGISTRY,
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "skillswap_http_requests_in_progress",
    "HTTP requests currently being processed",
    ["method", "endpoint"],
    registry=REGISTRY,
)

# Ledger movements
ledger_entries_total = Counter(
    "skillswap_ledger_entries_total",
    "Ledger entries appended, by transaction type and direction",
    ["type", "direction"],  # direction: debit | credit
    registry=REGISTRY,
)

ledger_credits_moved_total = Counter(
    "skillswap_ledger_credits_moved_total",
    "Absolute credits moved through the ledger, by transaction type",
    ["type"],
    registry=REGISTRY,
)

ledger_balance_drift_total = Counter(
    "skillswap_ledger_balance_drift_total",
    "Number of cached balances found out of sync with the transaction log",
    registry=REGISTRY,
)

# Session lifecycle
session_transitions_total = Counter(
    "skillswap_session_transitions_total",
    "Session lifecycle transitions",
    ["transition"],  # scheduled | started | completed | cancelled
    registry=REGISTRY,
)

scheduling_conflicts_total = Counter(
    "skillswap_scheduling_conflicts_total",
    "Booking attempts rejected because the teacher's slot was taken",
    registry=REGISTRY,
)

reservations_reconciled_total = Counter(
    "skillswap_reservations_reconciled_total",
    "Orphaned slot reservations handled by the reconciler",
    ["outcome"],  # completed | released | failed
    registry=REGISTRY,
)

keyed_lock_events_total = Counter(
    "skillswap_keyed_lock_events_total",
    "Keyed lock events by namespace and outcome",
    ["namespace", "outcome"],  # acquired | timeout | expired | error | redis_unavailable
    registry=REGISTRY,
)

# External collaborators
collaborator_calls_total = Counter(
    "skillswap_collaborator_calls_total",
    "External collaborator calls by collaborator and outcome",
    ["collaborator", "outcome"],  # success | error
    registry=REGISTRY,
)

collaborator_call_seconds = Histogram(
    "skillswap_collaborator_call_seconds",
    "External collaborator call duration in seconds",
    ["collaborator"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'SessionScheduler')
            operation: Operation/method name (e.g., 'schedule_session')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        http_requests_total.labels(
            method=method, endpoint=endpoint, status_code=str(status_code)
        ).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def track_http_request_start(method: str, endpoint: str) -> None:
        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()

    @staticmethod
    def track_http_request_end(method: str, endpoint: str) -> None:
        http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    @staticmethod
    def record_ledger_entry(transaction_type: str, amount: int) -> None:
        direction = "debit" if amount < 0 else "credit"
        ledger_entries_total.labels(type=transaction_type, direction=direction).inc()
        ledger_credits_moved_total.labels(type=transaction_type).inc(abs(amount))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_balance_drift() -> None:
        ledger_balance_drift_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_session_transition(transition: str) -> None:
        session_transitions_total.labels(transition=transition).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_scheduling_conflict() -> None:
        scheduling_conflicts_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_reconciliation(outcome: str) -> None:
        reservations_reconciled_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_lock(namespace: str, outcome: str) -> None:
        keyed_lock_events_total.labels(namespace=namespace, outcome=outcome).inc()

    @staticmethod
    def record_collaborator_call(collaborator: str, outcome: str, duration: float) -> None:
        collaborator_calls_total.labels(collaborator=collaborator, outcome=outcome).inc()
        collaborator_call_seconds.labels(collaborator=collaborator).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        ttl = PrometheusMetrics._cache_ttl_seconds

        if payload is not None and ts is not None and (now - ts) <= ttl:
            return payload

        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is None or ts is None or (now - ts) > ttl:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_ts = monotonic()
                payload = PrometheusMetrics._cache_payload

        return cast(bytes, payload)

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
