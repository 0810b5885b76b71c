"""CRUD for funnels, reports, dashboards and alerts.

All four are plain workspace-scoped records; lookups always match on both
the record id and the workspace id.
"""

import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_server.lib.errors import NotFoundError, StorageError, ValidationError
from analytics_server.models.funnel import Funnel
from analytics_server.models.saved_config import Alert, Dashboard, Report
from analytics_server.models.workspace import Workspace

logger = logging.getLogger(__name__)

MAX_FUNNEL_STEPS = 20

_RESOURCE_NAMES = {Funnel: 'Funnel', Report: 'Report', Dashboard: 'Dashboard', Alert: 'Alert'}


def validate_funnel_steps(steps: Any) -> List[str]:
  """Return a copy of the step list after checking its shape.

  Raises:
      ValidationError: Not a list of 1..20 non-empty event names
  """
  if not isinstance(steps, list) or not 1 <= len(steps) <= MAX_FUNNEL_STEPS:
    raise ValidationError(f'A funnel needs between 1 and {MAX_FUNNEL_STEPS} steps')
  for position, step in enumerate(steps):
    if not isinstance(step, str) or not step.strip():
      raise ValidationError(f'Funnel step {position + 1} must be a non-empty event name')
  return list(steps)


class SavedConfigService:
  def __init__(self, db: Session):
    self.db = db

  def _ensure_workspace(self, workspace_id: str) -> None:
    if self.db.get(Workspace, workspace_id) is None:
      raise NotFoundError('Workspace', workspace_id)

  def _save(self, record, action: str):
    try:
      self.db.commit()
    except SQLAlchemyError as e:
      self.db.rollback()
      logger.error(f'Failed to {action}: {e}')
      raise StorageError(f'Failed to {action}') from e
    return record

  def list_records(self, model: Type, workspace_id: str) -> List:
    """Records of one kind for a workspace, newest first."""
    self._ensure_workspace(workspace_id)
    stmt = (
      select(model)
      .where(model.workspace_id == workspace_id)
      .order_by(model.created_at.desc(), model.id.asc())
    )
    return list(self.db.scalars(stmt).all())

  def get_record(self, model: Type, workspace_id: str, record_id: str):
    record = self.db.scalar(
      select(model).where(model.id == record_id, model.workspace_id == workspace_id)
    )
    if record is None:
      raise NotFoundError(_RESOURCE_NAMES[model], record_id)
    return record

  def create_record(self, model: Type, workspace_id: str, values: Dict[str, Any]):
    self._ensure_workspace(workspace_id)
    if model is Funnel:
      values = {**values, 'steps': validate_funnel_steps(values.get('steps'))}

    record = model(workspace_id=workspace_id, **values)
    self.db.add(record)
    self._save(record, f'create {_RESOURCE_NAMES[model].lower()}')
    logger.info(f'Created {_RESOURCE_NAMES[model].lower()} {record.id} in workspace {workspace_id}')
    return record

  def update_record(self, model: Type, workspace_id: str, record_id: str, values: Dict[str, Any]):
    """Apply the given fields; keys with None values are left unchanged."""
    record = self.get_record(model, workspace_id, record_id)
    for field, value in values.items():
      if value is not None:
        setattr(record, field, value)
    return self._save(record, f'update {_RESOURCE_NAMES[model].lower()}')

  def delete_record(self, model: Type, workspace_id: str, record_id: str) -> None:
    record = self.get_record(model, workspace_id, record_id)
    self.db.delete(record)
    self._save(record, f'delete {_RESOURCE_NAMES[model].lower()}')

  def get_funnel(self, workspace_id: str, funnel_id: str) -> Funnel:
    return self.get_record(Funnel, workspace_id, funnel_id)

  def create_funnel(
    self, workspace_id: str, name: str, steps: List[str], description: Optional[str] = None
  ) -> Funnel:
    return self.create_record(
      Funnel, workspace_id, {'name': name, 'steps': steps, 'description': description}
    )
