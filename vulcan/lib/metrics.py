"""Prometheus-compatible metrics for request and published-API monitoring.

These are process-level counters exposed at /metrics. The per-API counters
persisted with each PublishedAPI record live in the API repository.
"""

from prometheus_client import Counter, Gauge, Histogram


# Performance metrics
request_duration_seconds = Histogram(
    'request_duration_seconds',
    'Request duration in seconds',
    ['endpoint', 'method', 'status'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)

sql_execution_duration_seconds = Histogram(
    'sql_execution_duration_seconds',
    'Duration of SQL statements run against target databases',
    ['engine', 'outcome'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)

# Published API metrics
sql_api_calls_total = Counter(
    'sql_api_calls_total',
    'Total published SQL API invocations',
    ['api_id', 'outcome']
)

sql_api_concurrent_calls = Gauge(
    'sql_api_concurrent_calls',
    'Published SQL API invocations currently executing'
)


def record_request_duration(endpoint: str, method: str, status: int, duration_seconds: float):
    """Record overall request duration.

    Args:
        endpoint: API endpoint path
        method: HTTP method (GET, POST, etc.)
        status: HTTP status code
        duration_seconds: Request duration in seconds
    """
    request_duration_seconds.labels(
        endpoint=endpoint,
        method=method,
        status=str(status)
    ).observe(duration_seconds)


def record_sql_execution(engine: str, outcome: str, duration_seconds: float):
    """Record a SQL statement execution.

    Args:
        engine: Database engine ('MYSQL' or 'POSTGRESQL')
        outcome: 'success' or 'failure'
        duration_seconds: Execution time in seconds
    """
    sql_execution_duration_seconds.labels(engine=engine, outcome=outcome).observe(duration_seconds)


def record_sql_api_call(api_id: str, outcome: str):
    """Record a completed published API call.

    Args:
        api_id: Published API id
        outcome: 'success' or 'failure'
    """
    sql_api_calls_total.labels(api_id=api_id, outcome=outcome).inc()


def track_concurrent_call(delta: int):
    """Adjust the in-flight published API call gauge by delta (+1 / -1)."""
    sql_api_concurrent_calls.inc(delta)
