import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text

from analytics_server.lib.database import Base


def utc_now() -> datetime:
  """Current time as naive UTC, the representation every timestamp column uses."""
  return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
  return str(uuid.uuid4())


class Event(Base):
  """Tracked behavioral event.

  Append-only: rows are never updated by normal operation. Every read path
  filters on workspace_id.
  """

  __tablename__ = 'analytics_events'

  id = Column(String(36), primary_key=True, default=new_id)
  workspace_id = Column(String(36), ForeignKey('workspaces.id'), nullable=False)
  event_name = Column(String(255), nullable=False)
  event_type = Column(String(100), nullable=False, default='custom')
  user_id = Column(String(255), nullable=True)
  session_id = Column(String(255), nullable=True)
  source = Column(String(255), nullable=True)
  timestamp = Column(DateTime, nullable=False, default=utc_now)
  properties = Column(JSON, nullable=True)

  # Contextual fields, written once at ingestion
  ip_address = Column(String(64), nullable=True)
  user_agent = Column(Text, nullable=True)
  url = Column(Text, nullable=True)
  referrer = Column(Text, nullable=True)
  country = Column(String(64), nullable=True)
  device = Column(String(64), nullable=True)

  __table_args__ = (
    Index('ix_analytics_events_workspace_timestamp', 'workspace_id', 'timestamp'),
    Index('ix_analytics_events_workspace_name', 'workspace_id', 'event_name'),
    Index('ix_analytics_events_workspace_user', 'workspace_id', 'user_id'),
  )

  def __repr__(self) -> str:
    return f"<Event(id={self.id}, workspace_id='{self.workspace_id}', event_name='{self.event_name}')>"

  def to_dict(self) -> dict:
    """Convert model to dictionary (timestamps as ISO 8601 UTC with a Z suffix)."""
    return {
      'id': self.id,
      'workspace_id': self.workspace_id,
      'event_name': self.event_name,
      'event_type': self.event_type,
      'user_id': self.user_id,
      'session_id': self.session_id,
      'source': self.source,
      'timestamp': self.timestamp.isoformat() + 'Z' if self.timestamp else None,
      'properties': self.properties,
      'ip_address': self.ip_address,
      'user_agent': self.user_agent,
      'url': self.url,
      'referrer': self.referrer,
      'country': self.country,
      'device': self.device,
    }
