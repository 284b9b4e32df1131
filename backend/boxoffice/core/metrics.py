"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Hold metrics
hold_attempts = Counter(
    'seat_hold_attempts_total',
    'Total seat hold attempts',
    ['result']  # success, conflict, rejected
)

seats_held = Counter(
    'seats_held_total',
    'Seats moved from AVAILABLE to HELD'
)

seats_released = Counter(
    'seats_released_total',
    'Seats returned to AVAILABLE',
    ['reason']  # user, sweep, cancel
)

# Booking metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking state transitions',
    ['transition']  # created, confirmed, cancelled, expired
)

transaction_latency = Histogram(
    'booking_transaction_latency_seconds',
    'Latency of seat/booking transactions',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0]
)

transaction_conflicts = Counter(
    'transaction_conflicts_total',
    'Transactions aborted because of a lost race or stale version',
    ['operation']
)

# Sweep metrics
sweep_runs = Counter(
    'expiry_sweep_runs_total',
    'Expiry sweep executions',
    ['job', 'result']  # ran, skipped, failed
)

sweep_counter_failures = Counter(
    'expiry_sweep_counter_failures_total',
    'Per-event available_seats updates that failed during a hold sweep'
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


def record_hold_attempt(result: str):
    """Record hold attempt. Result: success, conflict, rejected"""
    hold_attempts.labels(result=result).inc()


def record_booking_transition(transition: str, count: int = 1):
    booking_transitions.labels(transition=transition).inc(count)


def record_conflict(operation: str):
    transaction_conflicts.labels(operation=operation).inc()


def record_sweep(job: str, result: str):
    sweep_runs.labels(job=job, result=result).inc()
