from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from analytics_server.lib.auth import require_workspace
from analytics_server.lib.cache import ResultCache
from analytics_server.lib.database import get_db_session
from analytics_server.lib.dependencies import get_result_cache
from analytics_server.models.funnel import Funnel
from analytics_server.routers.analytics import RANGE_PATTERN
from analytics_server.services.analytics_service import AnalyticsService
from analytics_server.services.saved_config_service import MAX_FUNNEL_STEPS, SavedConfigService

router = APIRouter(prefix='/workspaces/{workspace_id}/funnels', tags=['Funnels'])


class FunnelCreate(BaseModel):
  name: str = Field(..., min_length=1, max_length=255)
  description: Optional[str] = None
  steps: List[str] = Field(
    ..., min_length=1, max_length=MAX_FUNNEL_STEPS, description='Ordered event names'
  )


@router.get('')
def list_funnels(
  workspace_id: str = Depends(require_workspace), db: Session = Depends(get_db_session)
):
  service = SavedConfigService(db)
  return [funnel.to_dict() for funnel in service.list_records(Funnel, workspace_id)]


@router.post('', status_code=201)
def create_funnel(
  body: FunnelCreate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  funnel = SavedConfigService(db).create_funnel(
    workspace_id, body.name, body.steps, description=body.description
  )
  return funnel.to_dict()


@router.get('/{funnel_id}')
def get_funnel(
  funnel_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return SavedConfigService(db).get_funnel(workspace_id, funnel_id).to_dict()


@router.get('/{funnel_id}/analysis')
def analyze_funnel(
  funnel_id: str,
  workspace_id: str = Depends(require_workspace),
  range: str = Query('7d', pattern=RANGE_PATTERN),
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
):
  """Distinct users per step and overall conversion for the window.

  Steps are counted independently: a user is counted for a step whether or
  not they completed the previous one first.
  """
  funnel = SavedConfigService(db).get_funnel(workspace_id, funnel_id)
  return AnalyticsService(db, cache).get_funnel_analysis(funnel, range, start_date, end_date)
