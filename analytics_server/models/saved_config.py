"""Saved configuration records: reports, dashboards and alerts.

These are user-authored records persisted for later retrieval. They do not
take part in aggregation.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String, Text

from analytics_server.lib.database import Base
from analytics_server.models.event import new_id, utc_now


def _iso(value):
  return value.isoformat() if value else None


class Report(Base):
  """A saved query shape."""

  __tablename__ = 'reports'

  id = Column(String(36), primary_key=True, default=new_id)
  workspace_id = Column(String(36), ForeignKey('workspaces.id'), nullable=False)
  name = Column(String(255), nullable=False)
  description = Column(Text, nullable=True)
  type = Column(String(50), nullable=False, default='on-demand')
  config = Column(JSON, nullable=True)
  created_at = Column(DateTime, nullable=False, default=utc_now)
  updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

  __table_args__ = (Index('ix_reports_workspace_id', 'workspace_id'),)

  def to_dict(self) -> dict:
    return {
      'id': self.id,
      'workspace_id': self.workspace_id,
      'name': self.name,
      'description': self.description,
      'type': self.type,
      'config': self.config or {},
      'created_at': _iso(self.created_at),
      'updated_at': _iso(self.updated_at),
    }


class Dashboard(Base):
  """A saved layout of dashboard widgets."""

  __tablename__ = 'dashboards'

  id = Column(String(36), primary_key=True, default=new_id)
  workspace_id = Column(String(36), ForeignKey('workspaces.id'), nullable=False)
  name = Column(String(255), nullable=False)
  description = Column(Text, nullable=True)
  layout = Column(JSON, nullable=True)
  created_at = Column(DateTime, nullable=False, default=utc_now)
  updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

  __table_args__ = (Index('ix_dashboards_workspace_id', 'workspace_id'),)

  def to_dict(self) -> dict:
    return {
      'id': self.id,
      'workspace_id': self.workspace_id,
      'name': self.name,
      'description': self.description,
      'layout': self.layout or {},
      'created_at': _iso(self.created_at),
      'updated_at': _iso(self.updated_at),
    }


class Alert(Base):
  """A saved trigger condition (evaluation is handled outside this service)."""

  __tablename__ = 'alerts'

  id = Column(String(36), primary_key=True, default=new_id)
  workspace_id = Column(String(36), ForeignKey('workspaces.id'), nullable=False)
  name = Column(String(255), nullable=False)
  description = Column(Text, nullable=True)
  condition = Column(JSON, nullable=False)
  is_active = Column(Boolean, nullable=False, default=True)
  created_at = Column(DateTime, nullable=False, default=utc_now)
  updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

  __table_args__ = (Index('ix_alerts_workspace_id', 'workspace_id'),)

  def to_dict(self) -> dict:
    return {
      'id': self.id,
      'workspace_id': self.workspace_id,
      'name': self.name,
      'description': self.description,
      'condition': self.condition,
      'is_active': self.is_active,
      'created_at': _iso(self.created_at),
      'updated_at': _iso(self.updated_at),
    }
