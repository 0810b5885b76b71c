from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text

from analytics_server.lib.database import Base
from analytics_server.models.event import new_id, utc_now


class Funnel(Base):
  """Ordered list of event names defining a conversion path."""

  __tablename__ = 'funnels'

  id = Column(String(36), primary_key=True, default=new_id)
  workspace_id = Column(String(36), ForeignKey('workspaces.id'), nullable=False)
  name = Column(String(255), nullable=False)
  description = Column(Text, nullable=True)
  steps = Column(JSON, nullable=False)
  created_at = Column(DateTime, nullable=False, default=utc_now)

  __table_args__ = (Index('ix_funnels_workspace_id', 'workspace_id'),)

  def to_dict(self) -> dict:
    return {
      'id': self.id,
      'workspace_id': self.workspace_id,
      'name': self.name,
      'description': self.description,
      'steps': list(self.steps or []),
      'created_at': self.created_at.isoformat() if self.created_at else None,
    }
