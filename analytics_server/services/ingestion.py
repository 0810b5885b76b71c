"""Ingestion gate: admission of single events and batches.

Per request: validate -> quota check -> store and charge the counter ->
invalidate tenant cache -> broadcast -> acknowledge.

Validation and quota rejections happen before anything is written. The insert
and the quota-bounded counter increment commit in one transaction, so two
requests racing for the last slot cannot both be stored. Once the events are
committed the remaining steps are best effort: a failure is logged, counted
and reported in IngestionResult.degraded, but the request still succeeds
because the events are durable.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from analytics_server.lib.cache import ResultCache
from analytics_server.lib.errors import QuotaExceededError, ValidationError
from analytics_server.lib.metrics import record_ingestion, record_side_effect_failure
from analytics_server.lib.structured_logger import StructuredLogger
from analytics_server.models.event import Event
from analytics_server.services.event_store import EventStore
from analytics_server.services.live_feed import LiveFeedBroker
from analytics_server.services.quota_service import QuotaCounter

logger = StructuredLogger(__name__)

STEP_CACHE = 'cache_invalidated'
STEP_BROADCAST = 'broadcast'


@dataclass
class IngestionResult:
  events: List[Event]
  degraded: List[str] = field(default_factory=list)

  @property
  def stored(self) -> int:
    return len(self.events)


class IngestionGate:
  """Orchestrates event admission for one request.

  Args:
      db: SQLAlchemy database session
      cache: Result cache to invalidate after a write (None skips the step)
      broker: Live feed broker (None skips the broadcast)
  """

  def __init__(
    self,
    db: Session,
    cache: Optional[ResultCache] = None,
    broker: Optional[LiveFeedBroker] = None,
  ):
    self.store = EventStore(db)
    self.quota = QuotaCounter(db)
    self.cache = cache
    self.broker = broker

  def ingest(self, workspace_id: str, payload: Dict[str, Any]) -> IngestionResult:
    """Admit a single event."""
    return self._admit(workspace_id, [payload], single=True)

  def ingest_batch(self, workspace_id: str, payloads: List[Dict[str, Any]]) -> IngestionResult:
    """Admit 1..1000 events atomically (all stored or none)."""
    return self._admit(workspace_id, payloads, single=False)

  def _admit(self, workspace_id: str, payloads: List[Dict[str, Any]], single: bool) -> IngestionResult:
    try:
      rows = self.store.validate(payloads, single=single)
    except ValidationError:
      record_ingestion('rejected_validation', len(payloads))
      raise

    def charge_quota():
      self.quota.increment(workspace_id, len(rows), within_quota=True, commit=False)

    try:
      self.quota.ensure_admitted(workspace_id, requested=len(rows))
      events = self.store.write(workspace_id, rows, before_commit=charge_quota)
    except QuotaExceededError:
      record_ingestion('rejected_quota', len(rows))
      raise
    except Exception:
      record_ingestion('failed', len(rows))
      raise

    record_ingestion('stored', len(events))
    result = IngestionResult(events=events)

    if self.cache is not None:
      self._best_effort(result, STEP_CACHE, workspace_id, self.cache.invalidate_tenant, workspace_id)
    if self.broker is not None:
      self._best_effort(
        result,
        STEP_BROADCAST,
        workspace_id,
        self.broker.publish,
        workspace_id,
        [event.to_dict() for event in events],
      )

    logger.info(
      'Events ingested',
      workspace_id=workspace_id,
      event_count=len(events),
      degraded=result.degraded,
    )
    return result

  def _best_effort(self, result: IngestionResult, step: str, workspace_id: str, fn, *args) -> None:
    try:
      fn(*args)
    except Exception as e:
      result.degraded.append(step)
      record_side_effect_failure(step)
      logger.error(
        f'Ingestion step {step} failed after events were stored: {e}',
        exc_info=True,
        workspace_id=workspace_id,
        step=step,
        error_type=type(e).__name__,
      )
