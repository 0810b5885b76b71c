"""Dashboard analytics with short-TTL result caching.

Wraps QueryEngine: each call resolves the range selector, looks the result up
in the ResultCache and computes it on a miss. Cache keys use the selector as
given ('7d', or the explicit bounds) so repeated polls of a rolling window hit
the same entry until the TTL expires or the tenant is written to.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from analytics_server.lib.cache import MISS, ResultCache, build_key
from analytics_server.lib.date_ranges import DEFAULT_RANGE, DateRange, percent_change, resolve_range
from analytics_server.lib.metrics import record_cache_lookup, update_active_users_count
from analytics_server.models.event import utc_now
from analytics_server.models.funnel import Funnel
from analytics_server.services.query_engine import QueryEngine

logger = logging.getLogger(__name__)


class AnalyticsService:
  """Cached analytics for one request.

  Args:
      db: SQLAlchemy database session
      cache: Process-wide result cache; None disables caching
      clock: Returns the current instant as naive UTC
  """

  def __init__(
    self,
    db: Session,
    cache: Optional[ResultCache] = None,
    clock: Callable[[], datetime] = utc_now,
  ):
    self.engine = QueryEngine(db, clock=clock)
    self.cache = cache
    self.clock = clock

  def _resolve(
    self, range_name: Optional[str], start_date: Optional[datetime], end_date: Optional[datetime]
  ) -> DateRange:
    return resolve_range(range_name, start_date, end_date, now=self.clock())

  def _cached(self, workspace_id: str, kind: str, compute: Callable[[], Any], **params) -> Any:
    """Return the cached result for (workspace, kind, params) or compute and store it.

    Cache failures never fail the request: a read error is a miss and a write
    error only loses the memoization. A result computed while the tenant was
    being written to is returned but not stored.
    """
    if self.cache is None:
      return compute()

    key = build_key(workspace_id, kind, **params)
    generation = None
    try:
      generation = self.cache.generation(workspace_id)
      cached = self.cache.get(key)
    except Exception as e:
      logger.warning(f'Result cache read failed for {key}, computing live: {e}')
      cached = MISS

    record_cache_lookup(kind, hit=cached is not MISS)
    if cached is not MISS:
      logger.debug(f'Result cache hit: {key}')
      return cached

    data = compute()
    try:
      if not self.cache.put(key, data, generation=generation):
        logger.debug(f'Result cache skipped {key}: tenant invalidated during compute')
    except Exception as e:
      logger.warning(f'Result cache write failed for {key}: {e}')
    return data

  def get_stats(
    self,
    workspace_id: str,
    range_name: Optional[str] = DEFAULT_RANGE,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
  ) -> Dict:
    """Event and user totals for the window, with change versus the previous window.

    Returns:
        Dictionary with total_events, unique_users, trends and period
    """
    window = self._resolve(range_name, start_date, end_date)

    def compute():
      current = self.engine.stats(workspace_id, window.start, window.end)
      previous_window = window.previous()
      previous = self.engine.stats(workspace_id, previous_window.start, previous_window.end)
      return {
        **current,
        'trends': {
          'events_change': percent_change(current['total_events'], previous['total_events']),
          'users_change': percent_change(current['unique_users'], previous['unique_users']),
        },
        'period': window.to_dict(),
      }

    return self._cached(
      workspace_id, 'stats', compute, range=range_name, start=start_date, end=end_date
    )

  def get_top_events(
    self,
    workspace_id: str,
    range_name: Optional[str] = DEFAULT_RANGE,
    limit: int = 10,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
  ) -> List[Dict]:
    window = self._resolve(range_name, start_date, end_date)
    return self._cached(
      workspace_id,
      'top-events',
      lambda: self.engine.top_events(workspace_id, window.start, window.end, limit),
      range=range_name,
      start=start_date,
      end=end_date,
      limit=limit,
    )

  def get_volume(
    self,
    workspace_id: str,
    range_name: Optional[str] = DEFAULT_RANGE,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
  ) -> List[Dict]:
    window = self._resolve(range_name, start_date, end_date)
    return self._cached(
      workspace_id,
      'volume',
      lambda: self.engine.volume_by_day(workspace_id, window.start, window.end),
      range=range_name,
      start=start_date,
      end=end_date,
    )

  def get_trends(
    self,
    workspace_id: str,
    range_name: Optional[str] = DEFAULT_RANGE,
    period: str = 'day',
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
  ) -> List[Dict]:
    window = self._resolve(range_name, start_date, end_date)
    return self._cached(
      workspace_id,
      'trends',
      lambda: self.engine.event_trends(workspace_id, window.start, window.end, period),
      range=range_name,
      start=start_date,
      end=end_date,
      period=period,
    )

  def get_event_types(self, workspace_id: str) -> List[Dict]:
    return self._cached(
      workspace_id, 'event-types', lambda: self.engine.event_type_summary(workspace_id)
    )

  def get_funnel_analysis(
    self,
    funnel: Funnel,
    range_name: Optional[str] = DEFAULT_RANGE,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
  ) -> Dict:
    window = self._resolve(range_name, start_date, end_date)
    return self._cached(
      funnel.workspace_id,
      'funnel',
      lambda: self.engine.analyze_funnel(funnel, window.start, window.end),
      funnel_id=funnel.id,
      steps=list(funnel.steps or []),
      range=range_name,
      start=start_date,
      end=end_date,
    )

  def get_retention(self, workspace_id: str, cohort_date: date) -> Dict:
    return self._cached(
      workspace_id,
      'retention',
      lambda: self.engine.cohort_retention(workspace_id, cohort_date),
      cohort_date=cohort_date,
    )

  def get_active_users(self, workspace_id: str) -> Dict:
    """Distinct users in the last 5 minutes. Never cached: the window is relative to now."""
    count = self.engine.active_users_now(workspace_id)
    update_active_users_count(workspace_id, count)
    return {'active_users': count, 'window_minutes': 5}
