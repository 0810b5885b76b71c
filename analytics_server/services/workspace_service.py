"""Workspace, plan and API key management."""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_server.lib.date_ranges import to_utc_naive
from analytics_server.lib.errors import (
  AuthenticationError,
  InvalidCredentialsError,
  NotFoundError,
  StorageError,
  ValidationError,
)
from analytics_server.models.api_key import ApiKey
from analytics_server.models.event import utc_now
from analytics_server.models.workspace import DEFAULT_PLAN, PLAN_TIERS, Workspace, quota_for_plan

logger = logging.getLogger(__name__)

LAST_USED_RESOLUTION = timedelta(minutes=1)


def slugify(name: str) -> str:
  slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
  return slug or 'workspace'


def _check_plan(plan: str) -> None:
  if plan not in PLAN_TIERS:
    raise ValidationError(f"Invalid plan '{plan}'. Expected one of: {', '.join(PLAN_TIERS)}")


class WorkspaceService:
  """Tenant records and their ingestion credentials."""

  def __init__(self, db: Session):
    self.db = db

  def _commit(self, action: str) -> None:
    try:
      self.db.commit()
    except IntegrityError as e:
      self.db.rollback()
      raise ValidationError(f'Failed to {action}: conflicting record') from e
    except SQLAlchemyError as e:
      self.db.rollback()
      logger.error(f'Failed to {action}: {e}')
      raise StorageError(f'Failed to {action}') from e

  def get_workspace(self, workspace_id: str) -> Workspace:
    """Load a workspace.

    Raises:
        NotFoundError: Unknown workspace id
    """
    workspace = self.db.get(Workspace, workspace_id)
    if workspace is None:
      raise NotFoundError('Workspace', workspace_id)
    return workspace

  def create_workspace(
    self,
    name: str,
    slug: Optional[str] = None,
    plan: str = DEFAULT_PLAN,
    event_quota: Optional[int] = None,
  ) -> Workspace:
    """Create a workspace. The quota defaults to the plan tier's quota."""
    _check_plan(plan)
    slug = slugify(slug or name)

    if self.db.scalar(select(Workspace.id).where(Workspace.slug == slug)) is not None:
      raise ValidationError(f"Workspace slug '{slug}' is already taken")

    workspace = Workspace(
      name=name,
      slug=slug,
      plan=plan,
      event_quota=event_quota if event_quota is not None else quota_for_plan(plan),
      event_count=0,
    )
    self.db.add(workspace)
    self._commit('create workspace')
    logger.info(f'Created workspace {workspace.id} ({slug}, plan={plan})')
    return workspace

  def update_workspace(
    self,
    workspace_id: str,
    name: Optional[str] = None,
    plan: Optional[str] = None,
    event_quota: Optional[int] = None,
  ) -> Workspace:
    """Apply a name change or a plan/quota change from the billing system.

    When only the plan changes, the quota follows the plan's tier.
    """
    workspace = self.get_workspace(workspace_id)

    if name is not None:
      workspace.name = name
    if plan is not None:
      _check_plan(plan)
      workspace.plan = plan
      if event_quota is None:
        event_quota = quota_for_plan(plan)
    if event_quota is not None:
      if event_quota < 0:
        raise ValidationError('event_quota must be >= 0')
      workspace.event_quota = event_quota

    self._commit('update workspace')
    logger.info(
      f'Updated workspace {workspace_id}: plan={workspace.plan}, quota={workspace.event_quota}'
    )
    return workspace

  def list_api_keys(self, workspace_id: str) -> List[ApiKey]:
    self.get_workspace(workspace_id)
    stmt = (
      select(ApiKey).where(ApiKey.workspace_id == workspace_id).order_by(ApiKey.created_at.desc())
    )
    return list(self.db.scalars(stmt).all())

  def create_api_key(
    self, workspace_id: str, name: str, expires_at: Optional[datetime] = None
  ) -> ApiKey:
    self.get_workspace(workspace_id)
    api_key = ApiKey(
      workspace_id=workspace_id,
      name=name,
      expires_at=to_utc_naive(expires_at) if expires_at else None,
    )
    self.db.add(api_key)
    self._commit('create API key')
    logger.info(f'Created API key {api_key.id} for workspace {workspace_id}')
    return api_key

  def delete_api_key(self, workspace_id: str, key_id: str) -> None:
    api_key = self.db.scalar(
      select(ApiKey).where(ApiKey.id == key_id, ApiKey.workspace_id == workspace_id)
    )
    if api_key is None:
      raise NotFoundError('API key', key_id)
    self.db.delete(api_key)
    self._commit('delete API key')

  def authenticate_api_key(self, key: Optional[str]) -> ApiKey:
    """Resolve an X-API-Key value to its key record and stamp last use.

    The stamp is not committed here. It is written with the request's own
    transaction, so a request rejected later leaves no trace, and it is only
    refreshed once per LAST_USED_RESOLUTION.

    Raises:
        AuthenticationError: No key was presented (401)
        InvalidCredentialsError: Unknown, inactive or expired key (403)
    """
    if not key:
      raise AuthenticationError('API key required')

    api_key = self.db.scalar(select(ApiKey).where(ApiKey.key == key))
    if api_key is None or not api_key.is_active:
      raise InvalidCredentialsError('Invalid or inactive API key')

    now = utc_now()
    if api_key.expires_at is not None and now > api_key.expires_at:
      raise InvalidCredentialsError('API key has expired')

    if api_key.last_used_at is None or now - api_key.last_used_at >= LAST_USED_RESOLUTION:
      api_key.last_used_at = now
    return api_key
