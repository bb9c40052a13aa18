from __future__ import annotations

from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry(auto_describe=True)

ENGINE_CALL_DURATION = Histogram(
    "storyboard_engine_call_duration_seconds",
    "Latency for image engine HTTP calls per engine and operation.",
    ["engine", "operation"],
    registry=registry,
)

ENGINE_CALLS_TOTAL = Counter(
    "storyboard_engine_calls_total",
    "Total image engine HTTP calls partitioned by engine, operation and status.",
    ["engine", "operation", "status"],
    registry=registry,
)

ENGINE_POLL_ATTEMPTS = Histogram(
    "storyboard_engine_poll_attempts",
    "Number of poll attempts needed before a job reached a terminal state.",
    ["engine", "outcome"],
    buckets=(1, 2, 3, 5, 10, 20, 30, 40, 60),
    registry=registry,
)

UPLOAD_CACHE_LOOKUPS = Counter(
    "storyboard_upload_cache_lookups_total",
    "Reference image upload cache lookups by result (hit, miss, bypass).",
    ["result"],
    registry=registry,
)

GENERATIONS_TOTAL = Counter(
    "storyboard_generations_total",
    "Generation requests by engine and final status.",
    ["engine", "status"],
    registry=registry,
)


@contextmanager
def track_engine_call(engine: str, operation: str):
    timer = ENGINE_CALL_DURATION.labels(engine=engine, operation=operation).time()
    timer.__enter__()
    try:
        yield
        ENGINE_CALLS_TOTAL.labels(engine=engine, operation=operation, status="success").inc()
    except Exception:
        ENGINE_CALLS_TOTAL.labels(engine=engine, operation=operation, status="error").inc()
        raise
    finally:
        timer.__exit__(None, None, None)


def record_poll_attempts(engine: str, outcome: str, attempts: int) -> None:
    ENGINE_POLL_ATTEMPTS.labels(engine=engine, outcome=outcome).observe(attempts)


def record_upload_cache_lookup(result: str) -> None:
    UPLOAD_CACHE_LOOKUPS.labels(result=result).inc()


def record_generation(engine: str, status: str) -> None:
    GENERATIONS_TOTAL.labels(engine=engine, status=status).inc()


def get_metrics_payload() -> bytes:
    return generate_latest(registry)
