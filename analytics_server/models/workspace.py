"""Workspace SQLAlchemy Model

A workspace is the tenant boundary and the billing unit.
"""

from sqlalchemy import Column, DateTime, Integer, String

from analytics_server.lib.database import Base
from analytics_server.models.event import new_id, utc_now

# Plan tiers: event quota per billing period and monthly price in cents
PLAN_TIERS = {
  'free': {'name': 'Free', 'price': 0, 'event_quota': 10_000},
  'pro': {'name': 'Pro', 'price': 4900, 'event_quota': 500_000},
  'business': {'name': 'Business', 'price': 19900, 'event_quota': 5_000_000},
  'enterprise': {'name': 'Enterprise', 'price': None, 'event_quota': 50_000_000},
}

DEFAULT_PLAN = 'free'


def quota_for_plan(plan: str) -> int:
  """Return the event quota of a plan tier.

  Raises:
      KeyError: If the plan is not a known tier
  """
  return PLAN_TIERS[plan]['event_quota']


class Workspace(Base):
  """Tenant record.

  Columns:
      id: UUID primary key
      name: Display name
      slug: Unique URL-safe identifier
      plan: Plan tier (free/pro/business/enterprise)
      event_quota: Max events per billing period (mutated by billing, re-read on every admission)
      event_count: Events admitted this period; only ever incremented atomically in SQL
  """

  __tablename__ = 'workspaces'

  id = Column(String(36), primary_key=True, default=new_id)
  name = Column(String(255), nullable=False)
  slug = Column(String(255), nullable=False, unique=True)
  plan = Column(String(50), nullable=False, default=DEFAULT_PLAN)
  event_quota = Column(Integer, nullable=False, default=lambda: quota_for_plan(DEFAULT_PLAN))
  event_count = Column(Integer, nullable=False, default=0)
  created_at = Column(DateTime, nullable=False, default=utc_now)
  updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

  def __repr__(self) -> str:
    return f"<Workspace(id={self.id}, slug='{self.slug}', plan='{self.plan}')>"

  def to_dict(self) -> dict:
    return {
      'id': self.id,
      'name': self.name,
      'slug': self.slug,
      'plan': self.plan,
      'event_quota': self.event_quota,
      'event_count': self.event_count,
      'created_at': self.created_at.isoformat() if self.created_at else None,
      'updated_at': self.updated_at.isoformat() if self.updated_at else None,
    }
