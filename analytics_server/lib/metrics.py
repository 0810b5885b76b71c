"""Prometheus metrics for ingestion, query and cache monitoring."""

from prometheus_client import Counter, Gauge, Histogram

# Request metrics
request_duration_seconds = Histogram(
  'request_duration_seconds',
  'Request duration in seconds',
  ['endpoint', 'method', 'status'],
  buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
)

# Ingestion metrics
events_ingested_total = Counter(
  'events_ingested_total',
  'Events processed by the ingestion gate',
  ['status'],
)

quota_rejections_total = Counter(
  'quota_rejections_total',
  'Ingestion requests rejected for exceeding the event quota',
  ['plan'],
)

ingestion_side_effect_failures_total = Counter(
  'ingestion_side_effect_failures_total',
  'Post-write ingestion steps that failed after the event was stored',
  ['step'],
)

# Query metrics
query_duration_seconds = Histogram(
  'analytics_query_duration_seconds',
  'Analytics query computation time in seconds',
  ['kind'],
  buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

cache_requests_total = Counter(
  'result_cache_requests_total',
  'Result cache lookups',
  ['kind', 'outcome'],
)

# User metrics
active_users_gauge = Gauge(
  'active_users',
  'Number of active users in last 5 minutes',
  ['workspace_id'],
)


def record_request_duration(endpoint: str, method: str, status: int, duration_seconds: float):
  """Record overall request duration.

  Args:
      endpoint: Route template (not the raw path, to keep label cardinality bounded)
      method: HTTP method
      status: HTTP status code
      duration_seconds: Request duration in seconds
  """
  request_duration_seconds.labels(endpoint=endpoint, method=method, status=str(status)).observe(
    duration_seconds
  )


def record_ingestion(status: str, count: int = 1):
  """Record ingested events by outcome ('stored', 'rejected_validation', 'rejected_quota', 'failed')."""
  events_ingested_total.labels(status=status).inc(count)


def record_quota_rejection(plan: str):
  quota_rejections_total.labels(plan=plan).inc()


def record_side_effect_failure(step: str):
  ingestion_side_effect_failures_total.labels(step=step).inc()


def record_query_duration(kind: str, duration_seconds: float):
  query_duration_seconds.labels(kind=kind).observe(duration_seconds)


def record_cache_lookup(kind: str, hit: bool):
  cache_requests_total.labels(kind=kind, outcome='hit' if hit else 'miss').inc()


def update_active_users_count(workspace_id: str, count: int):
  """Update the active users gauge for a workspace.

  Args:
      workspace_id: Tenant the count belongs to
      count: Number of active users in the last 5 minutes
  """
  active_users_gauge.labels(workspace_id=workspace_id).set(count)
