import secrets
import string

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from analytics_server.lib.database import Base
from analytics_server.models.event import new_id, utc_now

API_KEY_PREFIX = 'sfs_'
API_KEY_LENGTH = 32

_ALPHABET = string.ascii_letters + string.digits


def generate_api_key() -> str:
  """Generate a random ingestion key: 'sfs_' followed by 32 alphanumerics."""
  return API_KEY_PREFIX + ''.join(secrets.choice(_ALPHABET) for _ in range(API_KEY_LENGTH))


class ApiKey(Base):
  """Ingestion credential. Resolves an incoming X-API-Key header to its workspace."""

  __tablename__ = 'api_keys'

  id = Column(String(36), primary_key=True, default=new_id)
  workspace_id = Column(String(36), ForeignKey('workspaces.id'), nullable=False)
  name = Column(String(255), nullable=False)
  key = Column(String(64), nullable=False, unique=True, default=generate_api_key)
  is_active = Column(Boolean, nullable=False, default=True)
  expires_at = Column(DateTime, nullable=True)
  last_used_at = Column(DateTime, nullable=True)
  created_at = Column(DateTime, nullable=False, default=utc_now)

  __table_args__ = (Index('ix_api_keys_workspace_id', 'workspace_id'),)

  @property
  def key_preview(self) -> str:
    return f'{self.key[:12]}...{self.key[-4:]}'

  def to_dict(self, reveal_key: bool = False) -> dict:
    """Convert to dictionary. The full key is only revealed on creation."""
    data = {
      'id': self.id,
      'workspace_id': self.workspace_id,
      'name': self.name,
      'is_active': self.is_active,
      'expires_at': self.expires_at.isoformat() if self.expires_at else None,
      'last_used_at': self.last_used_at.isoformat() if self.last_used_at else None,
      'created_at': self.created_at.isoformat() if self.created_at else None,
      'key_preview': self.key_preview,
    }
    if reveal_key:
      data['key'] = self.key
    return data
