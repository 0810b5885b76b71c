"""Dashboard analytics endpoints.

All results except active users go through the process-wide result cache.
The `range` selector is one of today/7d/30d/90d; explicit start_date and
end_date override it.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from analytics_server.lib.auth import require_workspace
from analytics_server.lib.cache import ResultCache
from analytics_server.lib.database import get_db_session
from analytics_server.lib.dependencies import get_result_cache
from analytics_server.services.analytics_service import AnalyticsService
from analytics_server.services.query_engine import MAX_TOP_EVENTS_LIMIT

router = APIRouter(prefix='/workspaces/{workspace_id}/analytics', tags=['Analytics'])

RANGE_PATTERN = '^(today|7d|30d|90d)$'


@router.get('/stats')
def get_stats(
  workspace_id: str = Depends(require_workspace),
  range: str = Query('7d', pattern=RANGE_PATTERN),
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  """Total events and unique users with change versus the previous period.

  Args:
      workspace_id: Tenant (from path)
      range: Range selector ("today", "7d", "30d", "90d")
      start_date: Optional explicit start (ISO 8601)
      end_date: Optional explicit end (ISO 8601)
      db: Database session
      cache: Result cache

  Returns:
      Dictionary with total_events, unique_users, trends and period
  """
  return AnalyticsService(db, cache).get_stats(workspace_id, range, start_date, end_date)


@router.get('/top-events')
def get_top_events(
  workspace_id: str = Depends(require_workspace),
  range: str = Query('7d', pattern=RANGE_PATTERN),
  limit: int = Query(10, ge=1, le=MAX_TOP_EVENTS_LIMIT),
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  return AnalyticsService(db, cache).get_top_events(
    workspace_id, range, limit, start_date, end_date
  )


@router.get('/volume')
def get_volume(
  workspace_id: str = Depends(require_workspace),
  range: str = Query('7d', pattern=RANGE_PATTERN),
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  """Daily event counts (UTC days with at least one event)."""
  return AnalyticsService(db, cache).get_volume(workspace_id, range, start_date, end_date)


@router.get('/trends')
def get_trends(
  workspace_id: str = Depends(require_workspace),
  range: str = Query('7d', pattern=RANGE_PATTERN),
  period: str = Query('day', pattern='^(hour|day|week|month)$'),
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  return AnalyticsService(db, cache).get_trends(workspace_id, range, period, start_date, end_date)


@router.get('/event-types')
def get_event_types(
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  """Per-event-name summary across all time."""
  return AnalyticsService(db, cache).get_event_types(workspace_id)


@router.get('/active-users')
def get_active_users(
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return AnalyticsService(db).get_active_users(workspace_id)


@router.get('/retention')
def get_retention(
  cohort_date: date,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  """Retention at 7, 30 and 90 days for users active on cohort_date (YYYY-MM-DD)."""
  return AnalyticsService(db, cache).get_retention(workspace_id, cohort_date)
