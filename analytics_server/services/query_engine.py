"""Query engine: read-only aggregate views over the event log.

Every function takes the workspace id as its first argument and filters on it.
Counting, distinct-counting and daily bucketing run in SQL. Hour, ISO week and
month labels are computed in Python from streamed timestamps so the labels are
identical on every database backend. Timestamps are naive UTC throughout.

Percentages are rounded to 2 decimals.
"""

import logging
import time
from collections import Counter
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_server.lib.date_ranges import day_start, to_utc_naive
from analytics_server.lib.errors import StorageError, ValidationError
from analytics_server.lib.metrics import record_query_duration
from analytics_server.models.event import Event, utc_now
from analytics_server.models.funnel import Funnel

logger = logging.getLogger(__name__)

ACTIVE_USER_WINDOW = timedelta(minutes=5)
RETENTION_OFFSETS = (7, 30, 90)
TREND_PERIODS = ('hour', 'day', 'week', 'month')
MAX_TOP_EVENTS_LIMIT = 100
# Rows fetched per round trip when a query has to scan events in Python
STREAM_BATCH_SIZE = 1000


def _rate(part: int, whole: int) -> float:
  if whole == 0:
    return 0.0
  return round(part / whole * 100, 2)


def _day_label(value) -> str:
  # SQLite's date() returns text, PostgreSQL's a date
  return value if isinstance(value, str) else value.isoformat()


def _period_label(timestamp: datetime, period: str) -> str:
  if period == 'hour':
    return timestamp.strftime('%Y-%m-%dT%H:00')
  if period == 'day':
    return timestamp.date().isoformat()
  if period == 'week':
    year, week, _ = timestamp.isocalendar()
    return f'{year}-W{week:02d}'
  return timestamp.strftime('%Y-%m')


@contextmanager
def _measure(kind: str, workspace_id: str):
  """Time a query and surface database failures as StorageError."""
  started = time.perf_counter()
  try:
    yield
  except SQLAlchemyError as e:
    logger.error(f'{kind} query failed for workspace {workspace_id}: {e}')
    raise StorageError(f'Failed to compute {kind}') from e
  finally:
    record_query_duration(kind, time.perf_counter() - started)


class QueryEngine:
  """Aggregations for dashboards.

  Args:
      db: SQLAlchemy database session
      clock: Returns the current instant as naive UTC (injectable for tests)
  """

  def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
    self.db = db
    self.clock = clock

  def _in_range(self, stmt, workspace_id: str, start: datetime, end: datetime):
    return stmt.where(
      Event.workspace_id == workspace_id,
      Event.timestamp >= to_utc_naive(start),
      Event.timestamp <= to_utc_naive(end),
    )

  def stats(self, workspace_id: str, start: datetime, end: datetime) -> Dict[str, int]:
    """Total events and distinct non-null users in [start, end]."""
    stmt = self._in_range(
      select(func.count(Event.id), func.count(distinct(Event.user_id))), workspace_id, start, end
    )
    with _measure('stats', workspace_id):
      total_events, unique_users = self.db.execute(stmt).one()

    return {'total_events': total_events or 0, 'unique_users': unique_users or 0}

  def top_events(
    self, workspace_id: str, start: datetime, end: datetime, limit: int = 10
  ) -> List[Dict]:
    """Most frequent event names, count descending then name ascending."""
    if not 1 <= limit <= MAX_TOP_EVENTS_LIMIT:
      raise ValidationError(f'limit must be between 1 and {MAX_TOP_EVENTS_LIMIT}')

    count = func.count(Event.id).label('count')
    stmt = (
      self._in_range(select(Event.event_name, count), workspace_id, start, end)
      .group_by(Event.event_name)
      .order_by(count.desc(), Event.event_name.asc())
      .limit(limit)
    )
    with _measure('top-events', workspace_id):
      rows = self.db.execute(stmt).all()

    return [{'event_name': name, 'count': n} for name, n in rows]

  def volume_by_day(self, workspace_id: str, start: datetime, end: datetime) -> List[Dict]:
    """Event counts per UTC calendar day, ascending. Days without events are omitted."""
    # Timestamps are stored as naive UTC, so date() is the UTC day on every backend
    day = func.date(Event.timestamp).label('day')
    stmt = (
      self._in_range(select(day, func.count(Event.id)), workspace_id, start, end)
      .group_by(day)
      .order_by(day)
    )
    with _measure('volume', workspace_id):
      rows = self.db.execute(stmt).all()

    return [{'date': _day_label(value), 'count': n} for value, n in rows]

  def event_trends(
    self, workspace_id: str, start: datetime, end: datetime, period: str = 'day'
  ) -> List[Dict]:
    """Event counts bucketed by hour, day, ISO week or month (UTC), ascending."""
    if period not in TREND_PERIODS:
      raise ValidationError(f"Invalid period '{period}'. Expected one of: {', '.join(TREND_PERIODS)}")

    stmt = self._in_range(select(Event.timestamp), workspace_id, start, end).execution_options(
      yield_per=STREAM_BATCH_SIZE
    )
    with _measure('trends', workspace_id):
      buckets = Counter(_period_label(ts, period) for ts in self.db.scalars(stmt))

    return [{'period': label, 'count': buckets[label]} for label in sorted(buckets)]

  def event_type_summary(self, workspace_id: str) -> List[Dict]:
    """Per event name across all time: count, distinct users and mean top-level property count."""
    count = func.count(Event.id).label('count')
    grouped = (
      select(Event.event_name, count, func.count(distinct(Event.user_id)))
      .where(Event.workspace_id == workspace_id)
      .group_by(Event.event_name)
      .order_by(count.desc(), Event.event_name.asc())
    )
    properties_stmt = (
      select(Event.event_name, Event.properties)
      .where(Event.workspace_id == workspace_id)
      .execution_options(yield_per=STREAM_BATCH_SIZE)
    )

    with _measure('event-types', workspace_id):
      rows = self.db.execute(grouped).all()
      property_keys = Counter()
      for name, properties in self.db.execute(properties_stmt):
        if isinstance(properties, dict):
          property_keys[name] += len(properties)

    return [
      {
        'name': name,
        'count': n,
        'unique_users': users,
        'avg_property_count': round(property_keys[name] / n, 2) if n else 0.0,
      }
      for name, n, users in rows
    ]

  def analyze_funnel(self, funnel: Funnel, start: datetime, end: datetime) -> Dict:
    """Distinct users per funnel step within [start, end].

    Steps are evaluated independently: a user counts for a step if they ever
    produced that event in the window, whether or not they completed the
    previous step first.
    """
    steps = list(funnel.steps or [])
    counts: Dict[str, int] = {}

    if steps:
      stmt = (
        self._in_range(
          select(Event.event_name, func.count(distinct(Event.user_id))),
          funnel.workspace_id,
          start,
          end,
        )
        .where(Event.event_name.in_(set(steps)), Event.user_id.is_not(None))
        .group_by(Event.event_name)
      )
      with _measure('funnel', funnel.workspace_id):
        counts = dict(self.db.execute(stmt).all())

    step_results = []
    previous = None
    for position, event_name in enumerate(steps, start=1):
      users = counts.get(event_name, 0)
      step_results.append(
        {
          'step': position,
          'event_name': event_name,
          'unique_user_count': users,
          'conversion_from_previous': 0.0 if previous is None else _rate(users, previous),
        }
      )
      previous = users

    conversion_rate = 0.0
    if step_results:
      conversion_rate = _rate(
        step_results[-1]['unique_user_count'], step_results[0]['unique_user_count']
      )

    return {
      'funnel_id': funnel.id,
      'name': funnel.name,
      'steps': step_results,
      'conversion_rate': conversion_rate,
    }

  def cohort_retention(self, workspace_id: str, cohort_date: date) -> Dict:
    """Share of a day's users who come back 7, 30 and 90 days later.

    The cohort is every distinct user with an event on cohort_date (UTC). A
    member is retained at offset N if they have an event on cohort_date + N.
    """
    cohort_start = day_start(cohort_date)
    in_cohort_day = (
      Event.workspace_id == workspace_id,
      Event.user_id.is_not(None),
      Event.timestamp >= cohort_start,
      Event.timestamp < cohort_start + timedelta(days=1),
    )
    cohort_users = select(Event.user_id).where(*in_cohort_day).distinct()

    with _measure('retention', workspace_id):
      cohort_size = (
        self.db.scalar(select(func.count(distinct(Event.user_id))).where(*in_cohort_day)) or 0
      )

      retention = []
      for offset in RETENTION_OFFSETS:
        day = cohort_start + timedelta(days=offset)
        retained = 0
        if cohort_size:
          retained = self.db.scalar(
            select(func.count(distinct(Event.user_id))).where(
              Event.workspace_id == workspace_id,
              Event.timestamp >= day,
              Event.timestamp < day + timedelta(days=1),
              Event.user_id.in_(cohort_users),
            )
          ) or 0
        retention.append(
          {'day': offset, 'retained_count': retained, 'retention_rate': _rate(retained, cohort_size)}
        )

    return {'cohort_date': cohort_date.isoformat(), 'cohort_size': cohort_size, 'retention': retention}

  def active_users_now(self, workspace_id: str) -> int:
    """Distinct users with an event in the last 5 minutes."""
    now = self.clock()
    stmt = select(func.count(distinct(Event.user_id))).where(
      Event.workspace_id == workspace_id,
      Event.timestamp >= now - ACTIVE_USER_WINDOW,
      Event.timestamp <= now,
    )
    with _measure('active-users', workspace_id):
      return self.db.scalar(stmt) or 0
