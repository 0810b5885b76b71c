"""Event store: the append-only, tenant-partitioned event log.

Every read takes a workspace id and filters on it. Writes are validated in
full before anything touches the database, so a rejected batch leaves no rows
behind.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from analytics_server.lib.date_ranges import parse_datetime, to_utc_naive
from analytics_server.lib.errors import (
  AnalyticsError,
  BatchTooLargeError,
  NotFoundError,
  StorageError,
  ValidationError,
)
from analytics_server.models.event import Event, new_id, utc_now
from analytics_server.models.workspace import Workspace

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 1000
MAX_QUERY_LIMIT = 1000
DEFAULT_QUERY_LIMIT = 100
DEFAULT_EVENT_TYPE = 'custom'

# Fields a caller may supply; everything else on the row is assigned by the store
WRITABLE_FIELDS = (
  'event_name',
  'event_type',
  'user_id',
  'session_id',
  'source',
  'timestamp',
  'properties',
  'ip_address',
  'user_agent',
  'url',
  'referrer',
  'country',
  'device',
)

_STRING_LIMITS = {
  'event_name': 255,
  'event_type': 100,
  'user_id': 255,
  'session_id': 255,
  'source': 255,
  'ip_address': 64,
  'country': 64,
  'device': 64,
}


@dataclass
class EventFilter:
  """Query filter for the event log. workspace_id is mandatory."""

  workspace_id: str
  event_name: Optional[str] = None
  event_type: Optional[str] = None
  source: Optional[str] = None
  user_id: Optional[str] = None
  session_id: Optional[str] = None
  start_date: Optional[datetime] = None
  end_date: Optional[datetime] = None
  limit: int = DEFAULT_QUERY_LIMIT
  offset: int = 0

  def __post_init__(self):
    if not self.workspace_id:
      raise ValidationError('workspace_id is required')
    if not 1 <= self.limit <= MAX_QUERY_LIMIT:
      raise ValidationError(f'limit must be between 1 and {MAX_QUERY_LIMIT}')
    if self.offset < 0:
      raise ValidationError('offset must be >= 0')
    if self.start_date is not None:
      self.start_date = to_utc_naive(self.start_date)
    if self.end_date is not None:
      self.end_date = to_utc_naive(self.end_date)


def _fail(message: str, index: Optional[int], field: Optional[str] = None) -> ValidationError:
  if index is not None:
    message = f'Event at index {index}: {message}'
  details = [{'field': field, 'item_index': index}] if field else None
  return ValidationError(message, item_index=index, details=details)


def normalize_event(payload: Dict[str, Any], index: Optional[int] = None) -> Dict[str, Any]:
  """Validate one incoming event and return the column values to store.

  Args:
      payload: Event fields as sent by the caller (snake_case keys)
      index: Position in a batch, carried into the error for batch callers

  Returns:
      Dictionary of column values (without id/workspace_id)

  Raises:
      ValidationError: If a required field is missing or a field has the wrong shape
  """
  if not isinstance(payload, dict):
    raise _fail('event must be an object', index)

  event_name = payload.get('event_name')
  if not isinstance(event_name, str) or not event_name.strip():
    raise _fail('event_name is required', index, 'event_name')

  values = {field: payload.get(field) for field in WRITABLE_FIELDS}

  for field, max_length in _STRING_LIMITS.items():
    value = values[field]
    if value is None:
      continue
    if not isinstance(value, str):
      raise _fail(f'{field} must be a string', index, field)
    if len(value) > max_length:
      raise _fail(f'{field} must be at most {max_length} characters', index, field)

  properties = values['properties']
  if properties is not None and not isinstance(properties, dict):
    raise _fail('properties must be an object', index, 'properties')

  timestamp = values['timestamp']
  if timestamp is None:
    values['timestamp'] = utc_now()
  elif isinstance(timestamp, datetime):
    values['timestamp'] = to_utc_naive(timestamp)
  elif isinstance(timestamp, str):
    try:
      values['timestamp'] = parse_datetime(timestamp)
    except ValidationError as e:
      raise _fail(e.message, index, 'timestamp') from e
  else:
    raise _fail('timestamp must be an ISO 8601 string', index, 'timestamp')

  if not values['event_type']:
    values['event_type'] = DEFAULT_EVENT_TYPE

  return values


class EventStore:
  """Append and query events for one database session."""

  def __init__(self, db: Session):
    """Initialize event store.

    Args:
        db: SQLAlchemy database session
    """
    self.db = db

  def append(self, workspace_id: str, payload: Dict[str, Any]) -> Event:
    """Validate and durably store a single event.

    Raises:
        ValidationError: Missing event_name/workspace_id, bad field, or unknown workspace
        StorageError: The write failed (nothing was stored)
    """
    return self.append_batch(workspace_id, [payload], single=True)[0]

  def append_batch(
    self, workspace_id: str, payloads: List[Dict[str, Any]], single: bool = False
  ) -> List[Event]:
    """Validate every event, then store them all in one transaction.

    All-or-nothing: if any item fails validation nothing is written and the
    ValidationError carries the 0-based index of the first bad item.

    Args:
        workspace_id: Owning workspace
        payloads: 1..1000 event payloads
        single: Report errors without an item index (used by append)

    Returns:
        Stored events, in submission order
    """
    if not workspace_id:
      raise ValidationError('workspace_id is required')
    return self.write(workspace_id, self.validate(payloads, single=single))

  def validate(self, payloads: List[Dict[str, Any]], single: bool = False) -> List[Dict[str, Any]]:
    """Validate a batch without writing anything.

    Returns:
        Normalized column values per event, in submission order
    """
    if not payloads:
      raise ValidationError('At least one event is required')
    if len(payloads) > MAX_BATCH_SIZE:
      raise BatchTooLargeError(received=len(payloads), max_batch_size=MAX_BATCH_SIZE)

    return [
      normalize_event(payload, index=None if single else i) for i, payload in enumerate(payloads)
    ]

  def write(
    self,
    workspace_id: str,
    rows: List[Dict[str, Any]],
    before_commit: Optional[Callable[[], None]] = None,
  ) -> List[Event]:
    """Insert already-validated rows in a single transaction.

    Args:
        workspace_id: Owning workspace
        rows: Output of ``validate``
        before_commit: Runs inside the transaction after the insert; if it
            raises, nothing is stored
    """
    try:
      if self.db.get(Workspace, workspace_id) is None:
        raise ValidationError(f'Unknown workspace: {workspace_id}')

      events = [Event(id=new_id(), workspace_id=workspace_id, **values) for values in rows]
      self.db.add_all(events)
      if before_commit is not None:
        self.db.flush()
        before_commit()
      self.db.commit()
    except AnalyticsError:
      self.db.rollback()
      raise
    except SQLAlchemyError as e:
      self.db.rollback()
      logger.error(f'Failed to store {len(rows)} events for workspace {workspace_id}: {e}')
      raise StorageError('Failed to store events') from e

    logger.debug(f'Stored {len(events)} events for workspace {workspace_id}')
    return events

  def query(self, event_filter: EventFilter) -> List[Event]:
    """Return matching events, most recent first (ties broken by id ascending).

    Date bounds are inclusive.
    """
    f = event_filter
    stmt = select(Event).where(Event.workspace_id == f.workspace_id)

    if f.event_name is not None:
      stmt = stmt.where(Event.event_name == f.event_name)
    if f.event_type is not None:
      stmt = stmt.where(Event.event_type == f.event_type)
    if f.source is not None:
      stmt = stmt.where(Event.source == f.source)
    if f.user_id is not None:
      stmt = stmt.where(Event.user_id == f.user_id)
    if f.session_id is not None:
      stmt = stmt.where(Event.session_id == f.session_id)
    if f.start_date is not None:
      stmt = stmt.where(Event.timestamp >= f.start_date)
    if f.end_date is not None:
      stmt = stmt.where(Event.timestamp <= f.end_date)

    stmt = stmt.order_by(Event.timestamp.desc(), Event.id.asc()).limit(f.limit).offset(f.offset)

    try:
      return list(self.db.scalars(stmt).all())
    except SQLAlchemyError as e:
      logger.error(f'Event query failed for workspace {f.workspace_id}: {e}')
      raise StorageError('Failed to query events') from e

  def get(self, workspace_id: str, event_id: str) -> Event:
    """Fetch a single event owned by the workspace.

    Raises:
        NotFoundError: No such event in this workspace
    """
    stmt = select(Event).where(Event.workspace_id == workspace_id, Event.id == event_id)
    try:
      event = self.db.scalars(stmt).first()
    except SQLAlchemyError as e:
      raise StorageError('Failed to load event') from e

    if event is None:
      raise NotFoundError('Event', event_id)
    return event
