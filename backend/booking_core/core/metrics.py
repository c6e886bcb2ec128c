"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Allocator metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation attempts',
    ['outcome']  # held, unavailable, conflict, rejected, error
)

reserve_latency = Histogram(
    'reserve_latency_seconds',
    'Reserve request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Ledger metrics
ledger_conflicts = Counter(
    'ledger_commit_conflicts_total',
    'Ledger commits rejected because a precondition no longer held'
)

ledger_retries = Counter(
    'ledger_commit_retries_total',
    'Ledger commit retries after a conflict or transient lock error'
)

# Release/expiry metrics
reservation_transitions = Counter(
    'reservation_transitions_total',
    'Terminal reservation transitions',
    ['status']  # confirmed, cancelled, expired
)

expiry_sweeps = Counter(
    'expiry_sweeps_total',
    'Expiry sweep runs',
    ['trigger']  # periodic, lazy
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_reservation_attempt(outcome: str):
    """Record reserve outcome. Outcome: held, unavailable, conflict, rejected, error"""
    reservation_attempts.labels(outcome=outcome).inc()


def record_transition(status: str):
    reservation_transitions.labels(status=status).inc()


def record_sweep(trigger: str):
    expiry_sweeps.labels(trigger=trigger).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
