"""Workspace, plan and API key endpoints.

PATCH /workspaces/{id} is the hook the external billing system uses to move a
workspace between plans; the quota counter re-reads the new quota on the
next ingestion.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.orm import Session

from analytics_server.lib.auth import require_workspace
from analytics_server.lib.database import get_db_session
from analytics_server.models.workspace import PLAN_TIERS
from analytics_server.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=['Workspaces'])


class WorkspaceCreate(BaseModel):
  name: str = Field(..., min_length=1, max_length=255)
  slug: Optional[str] = Field(None, max_length=255)
  plan: str = Field('free', description='Plan tier')


class WorkspaceUpdate(BaseModel):
  name: Optional[str] = Field(None, min_length=1, max_length=255)
  plan: Optional[str] = None
  event_quota: Optional[int] = Field(
    None, ge=0, validation_alias=AliasChoices('event_quota', 'eventQuota')
  )


class ApiKeyCreate(BaseModel):
  name: str = Field(..., min_length=1, max_length=255)
  expires_at: Optional[datetime] = Field(
    None, validation_alias=AliasChoices('expires_at', 'expiresAt')
  )


@router.get('/billing/pricing')
async def get_pricing():
  """Plan tiers with their price (cents per month) and event quota."""
  return PLAN_TIERS


@router.post('/workspaces', status_code=201)
def create_workspace(body: WorkspaceCreate, db: Session = Depends(get_db_session)):
  workspace = WorkspaceService(db).create_workspace(body.name, slug=body.slug, plan=body.plan)
  return workspace.to_dict()


@router.get('/workspaces/{workspace_id}')
def get_workspace(
  workspace_id: str = Depends(require_workspace), db: Session = Depends(get_db_session)
):
  return WorkspaceService(db).get_workspace(workspace_id).to_dict()


@router.patch('/workspaces/{workspace_id}')
def update_workspace(
  body: WorkspaceUpdate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  """Change name, plan or quota. A plan change without a quota applies the tier's quota."""
  logger.info(f'Workspace update requested for {workspace_id}: plan={body.plan}')
  workspace = WorkspaceService(db).update_workspace(
    workspace_id, name=body.name, plan=body.plan, event_quota=body.event_quota
  )
  return workspace.to_dict()


@router.get('/workspaces/{workspace_id}/api-keys')
def list_api_keys(
  workspace_id: str = Depends(require_workspace), db: Session = Depends(get_db_session)
):
  """Key metadata with a preview only; the full key is never returned again."""
  return [key.to_dict() for key in WorkspaceService(db).list_api_keys(workspace_id)]


@router.post('/workspaces/{workspace_id}/api-keys', status_code=201)
def create_api_key(
  body: ApiKeyCreate,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  api_key = WorkspaceService(db).create_api_key(workspace_id, body.name, body.expires_at)
  return {
    **api_key.to_dict(reveal_key=True),
    'message': "Save this key securely. You won't be able to see it again.",
  }


@router.delete('/workspaces/{workspace_id}/api-keys/{key_id}')
def delete_api_key(
  key_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  WorkspaceService(db).delete_api_key(workspace_id, key_id)
  return {'success': True}
