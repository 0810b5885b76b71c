"""Models package for database entities."""

from analytics_server.models.api_key import ApiKey
from analytics_server.models.event import Event
from analytics_server.models.funnel import Funnel
from analytics_server.models.saved_config import Alert, Dashboard, Report
from analytics_server.models.workspace import PLAN_TIERS, Workspace

__all__ = [
  'Alert',
  'ApiKey',
  'Dashboard',
  'Event',
  'Funnel',
  'PLAN_TIERS',
  'Report',
  'Workspace',
]
