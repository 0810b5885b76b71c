"""Reports, dashboards and alerts: saved configuration records per workspace."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from analytics_server.lib.auth import require_workspace
from analytics_server.lib.database import get_db_session
from analytics_server.models.saved_config import Alert, Dashboard, Report
from analytics_server.services.saved_config_service import SavedConfigService

router = APIRouter(prefix='/workspaces/{workspace_id}', tags=['Saved configurations'])


class ReportCreate(BaseModel):
  name: str = Field(..., min_length=1, max_length=255)
  description: Optional[str] = None
  type: str = Field('on-demand', max_length=50, description='Report type')
  config: Optional[Dict[str, Any]] = Field(None, description='Saved query shape')


class ReportUpdate(BaseModel):
  name: Optional[str] = Field(None, min_length=1, max_length=255)
  description: Optional[str] = None
  type: Optional[str] = Field(None, max_length=50)
  config: Optional[Dict[str, Any]] = None


class DashboardCreate(BaseModel):
  name: str = Field(..., min_length=1, max_length=255)
  description: Optional[str] = None
  layout: Optional[Dict[str, Any]] = Field(None, description='Widget layout')


class AlertCreate(BaseModel):
  name: str = Field(..., min_length=1, max_length=255)
  description: Optional[str] = None
  condition: Dict[str, Any] = Field(..., description='Trigger condition')
  is_active: bool = True


# Reports


@router.get('/reports')
def list_reports(
  workspace_id: str = Depends(require_workspace), db: Session = Depends(get_db_session)
):
  return [r.to_dict() for r in SavedConfigService(db).list_records(Report, workspace_id)]


@router.post('/reports', status_code=201)
def create_report(
  body: ReportCreate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return SavedConfigService(db).create_record(Report, workspace_id, body.model_dump()).to_dict()


@router.get('/reports/{report_id}')
def get_report(
  report_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return SavedConfigService(db).get_record(Report, workspace_id, report_id).to_dict()


@router.patch('/reports/{report_id}')
def update_report(
  report_id: str,
  body: ReportUpdate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  service = SavedConfigService(db)
  return service.update_record(Report, workspace_id, report_id, body.model_dump()).to_dict()


@router.delete('/reports/{report_id}')
def delete_report(
  report_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  SavedConfigService(db).delete_record(Report, workspace_id, report_id)
  return {'success': True}


# Dashboards


@router.get('/dashboards')
def list_dashboards(
  workspace_id: str = Depends(require_workspace), db: Session = Depends(get_db_session)
):
  return [d.to_dict() for d in SavedConfigService(db).list_records(Dashboard, workspace_id)]


@router.post('/dashboards', status_code=201)
def create_dashboard(
  body: DashboardCreate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  service = SavedConfigService(db)
  return service.create_record(Dashboard, workspace_id, body.model_dump()).to_dict()


@router.get('/dashboards/{dashboard_id}')
def get_dashboard(
  dashboard_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return SavedConfigService(db).get_record(Dashboard, workspace_id, dashboard_id).to_dict()


# Alerts


@router.get('/alerts')
def list_alerts(
  workspace_id: str = Depends(require_workspace), db: Session = Depends(get_db_session)
):
  return [a.to_dict() for a in SavedConfigService(db).list_records(Alert, workspace_id)]


@router.post('/alerts', status_code=201)
def create_alert(
  body: AlertCreate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return SavedConfigService(db).create_record(Alert, workspace_id, body.model_dump()).to_dict()


@router.get('/alerts/{alert_id}')
def get_alert(
  alert_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return SavedConfigService(db).get_record(Alert, workspace_id, alert_id).to_dict()
