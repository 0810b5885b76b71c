"""Request identity dependencies.

Dashboard endpoints identify the tenant by the workspace id in the path;
ingestion clients identify themselves with an X-API-Key header that resolves
to a workspace. Both tag the request's log context with the workspace.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from analytics_server.lib.database import get_db_session
from analytics_server.lib.request_context import set_workspace_id
from analytics_server.lib.structured_logger import StructuredLogger
from analytics_server.models.api_key import ApiKey
from analytics_server.services.workspace_service import WorkspaceService

logger = StructuredLogger(__name__)


async def get_api_key(
  x_api_key: Optional[str] = Header(None, alias='X-API-Key'),
  db: Session = Depends(get_db_session),
) -> ApiKey:
  """Resolve the X-API-Key header to an active key record.

  Args:
      x_api_key: Raw header value
      db: Database session

  Returns:
      ApiKey whose workspace_id owns the request

  Raises:
      AuthenticationError: 401 if the header is missing
      InvalidCredentialsError: 403 if the key is unknown, inactive or expired
  """
  api_key = WorkspaceService(db).authenticate_api_key(x_api_key)
  set_workspace_id(api_key.workspace_id)
  logger.debug('Authenticated API key', workspace_id=api_key.workspace_id)
  return api_key


async def require_workspace(workspace_id: str, db: Session = Depends(get_db_session)) -> str:
  """Validate the workspace id from the path.

  Raises:
      NotFoundError: 404 if the workspace does not exist
  """
  WorkspaceService(db).get_workspace(workspace_id)
  set_workspace_id(workspace_id)
  return workspace_id
