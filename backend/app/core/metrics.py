"""
Prometheus metrics for the booking engine, the database stores and the
event-list cache. Scraped from GET /metrics.

Outcome labels on booking and cancellation counters mirror the error
codes in app.core.exceptions (success, not_found, forbidden,
invalid_state, insufficient, invalid_request, unavailable, error).
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking lifecycle
booking_attempts = Counter(
    "booking_attempts_total",
    "Booking requests by outcome",
    ["status"],
)

booking_latency = Histogram(
    "booking_latency_seconds",
    "Time spent in create_booking, retries included",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

booking_cancellations = Counter(
    "booking_cancellations_total",
    "Cancellation requests by outcome",
    ["status"],
)

tickets_moved = Counter(
    "tickets_moved_total",
    "Tickets taken from or returned to event inventory",
    ["direction"],  # reserved, released
)

guard_rejections = Counter(
    "booking_guard_rejections_total",
    "Guarded updates that matched no row after the pre-check passed",
    ["operation"],  # reserve, cancel
)

# Stores
db_operations = Counter(
    "db_operations_total",
    "Store operations",
    ["operation"],  # read, write, retry
)

db_retries = Counter(
    "db_retry_attempts_total",
    "Store retry attempts after transient failures",
)

# Cache
cache_operations = Counter(
    "cache_operations_total",
    "Event-list cache lookups",
    ["operation", "result"],  # get; hit/miss
)

redis_connection_errors = Counter(
    "redis_connection_errors_total",
    "Redis connection errors",
)


def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_booking_attempt(status: str):
    booking_attempts.labels(status=status).inc()


def record_cancellation(status: str):
    booking_cancellations.labels(status=status).inc()


def record_tickets(direction: str, quantity: int):
    tickets_moved.labels(direction=direction).inc(quantity)


def record_guard_rejection(operation: str):
    """A concurrent writer won the race between pre-check and update."""
    guard_rejections.labels(operation=operation).inc()


def record_db_operation(operation: str):
    db_operations.labels(operation=operation).inc()


def record_db_retry():
    db_retries.inc()
    record_db_operation("retry")


def record_cache_operation(operation: str, hit: bool):
    cache_operations.labels(operation=operation, result="hit" if hit else "miss").inc()
