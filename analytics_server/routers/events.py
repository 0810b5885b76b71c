"""Event ingestion and event log endpoints.

Ingestion (POST /events, POST /events/batch) is authenticated with an API
key; the key decides the workspace. Reading the log is scoped by the
workspace id in the path.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from analytics_server.lib.auth import get_api_key, require_workspace
from analytics_server.lib.cache import ResultCache
from analytics_server.lib.database import get_db_session
from analytics_server.lib.dependencies import get_live_broker, get_result_cache
from analytics_server.models.api_key import ApiKey
from analytics_server.services.event_store import (
  DEFAULT_QUERY_LIMIT,
  MAX_BATCH_SIZE,
  MAX_QUERY_LIMIT,
  EventFilter,
  EventStore,
)
from analytics_server.services.ingestion import IngestionGate
from analytics_server.services.live_feed import LiveFeedBroker

router = APIRouter(tags=['Events'])


class EventInput(BaseModel):
  """Incoming event. Accepts snake_case or camelCase keys.

  event_name is checked by the event store rather than here, so a missing
  name in a batch is reported with its item index.
  """

  model_config = ConfigDict(populate_by_name=True)

  event_name: Optional[str] = Field(
    None, validation_alias=AliasChoices('event_name', 'eventName'), description='Event name'
  )
  event_type: Optional[str] = Field(
    None, validation_alias=AliasChoices('event_type', 'eventType'), description='Event category'
  )
  user_id: Optional[str] = Field(None, validation_alias=AliasChoices('user_id', 'userId'))
  session_id: Optional[str] = Field(None, validation_alias=AliasChoices('session_id', 'sessionId'))
  source: Optional[str] = Field(None, description='Sending application')
  timestamp: Optional[datetime] = Field(None, description='Occurrence time (ISO 8601)')
  properties: Optional[Dict[str, Any]] = Field(None, description='Arbitrary JSON properties')
  ip_address: Optional[str] = Field(None, validation_alias=AliasChoices('ip_address', 'ipAddress'))
  user_agent: Optional[str] = Field(None, validation_alias=AliasChoices('user_agent', 'userAgent'))
  url: Optional[str] = None
  referrer: Optional[str] = None
  country: Optional[str] = None
  device: Optional[str] = None


class EventBatchRequest(BaseModel):
  """Batch submission of events."""

  events: List[EventInput] = Field(
    ..., min_length=1, description=f'Array of events (max {MAX_BATCH_SIZE} per batch)'
  )

  @field_validator('events', mode='before')
  @classmethod
  def validate_batch_size(cls, v):
    """Reject oversized batches before validating items.

    The message is matched by the RequestValidationError handler in app.py
    and turned into a 413.
    """
    if isinstance(v, list) and len(v) > MAX_BATCH_SIZE:
      raise ValueError(
        f'Batch size exceeds maximum of {MAX_BATCH_SIZE} events (received: {len(v)})'
      )
    return v


def _with_request_context(payload: Dict[str, Any], request: Request) -> Dict[str, Any]:
  """Fill ip_address/user_agent from the HTTP request when the caller omitted them."""
  if payload.get('ip_address') is None and request.client is not None:
    payload['ip_address'] = request.client.host
  if payload.get('user_agent') is None:
    payload['user_agent'] = request.headers.get('user-agent')
  return payload


@router.post('/events', status_code=201)
def track_event(
  body: EventInput,
  request: Request,
  api_key: ApiKey = Depends(get_api_key),
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
  broker: LiveFeedBroker = Depends(get_live_broker),
):
  """Ingest a single event for the API key's workspace.

  Returns:
      The stored event, plus a `degraded` list naming any post-write step that failed
  """
  payload = _with_request_context(body.model_dump(), request)
  result = IngestionGate(db, cache, broker).ingest(api_key.workspace_id, payload)
  return {**result.events[0].to_dict(), 'degraded': result.degraded}


@router.post('/events/batch', status_code=201)
def track_events_batch(
  body: EventBatchRequest,
  request: Request,
  api_key: ApiKey = Depends(get_api_key),
  db: Session = Depends(get_db_session),
  cache: ResultCache = Depends(get_result_cache),
  broker: LiveFeedBroker = Depends(get_live_broker),
):
  """Ingest 1..1000 events atomically: either all are stored or none."""
  payloads = [_with_request_context(event.model_dump(), request) for event in body.events]
  result = IngestionGate(db, cache, broker).ingest_batch(api_key.workspace_id, payloads)
  return {
    'inserted': result.stored,
    'events': [event.to_dict() for event in result.events],
    'degraded': result.degraded,
  }


@router.get('/workspaces/{workspace_id}/events')
def list_events(
  workspace_id: str = Depends(require_workspace),
  event_name: Optional[str] = None,
  event_type: Optional[str] = None,
  source: Optional[str] = None,
  user_id: Optional[str] = None,
  session_id: Optional[str] = None,
  start_date: Optional[datetime] = None,
  end_date: Optional[datetime] = None,
  limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
  offset: int = Query(0, ge=0),
  db: Session = Depends(get_db_session),
):
  """Events of a workspace, most recent first."""
  event_filter = EventFilter(
    workspace_id=workspace_id,
    event_name=event_name,
    event_type=event_type,
    source=source,
    user_id=user_id,
    session_id=session_id,
    start_date=start_date,
    end_date=end_date,
    limit=limit,
    offset=offset,
  )
  return [event.to_dict() for event in EventStore(db).query(event_filter)]


@router.get('/workspaces/{workspace_id}/events/{event_id}')
def get_event(
  event_id: str,
  workspace_id: str = Depends(require_workspace),
  db: Session = Depends(get_db_session),
):
  return EventStore(db).get(workspace_id, event_id).to_dict()
