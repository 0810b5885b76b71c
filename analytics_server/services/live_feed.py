"""Live event fan-out to WebSocket subscribers.

Ingestion runs in FastAPI's threadpool while subscribers live on the event
loop, so publish() hands messages to each subscriber's asyncio queue with
loop.call_soon_threadsafe. Delivery is at-most-once: a full queue or a closed
loop drops the message for that subscriber.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Set

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


@dataclass(eq=False)
class Subscription:
  workspace_id: str
  loop: asyncio.AbstractEventLoop
  queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE))

  async def next_message(self) -> Dict[str, Any]:
    return await self.queue.get()


def _offer(queue: asyncio.Queue, message: Dict[str, Any]) -> None:
  try:
    queue.put_nowait(message)
  except asyncio.QueueFull:
    logger.warning('Live subscriber queue full, dropping message')


def event_message(event: Dict[str, Any]) -> Dict[str, Any]:
  return {
    'type': 'event',
    'data': event,
    'timestamp': datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + 'Z',
  }


class LiveFeedBroker:
  """Per-workspace registry of live subscribers."""

  def __init__(self):
    self._subscribers: Dict[str, Set[Subscription]] = {}
    self._lock = threading.Lock()

  def subscribe(self, workspace_id: str) -> Subscription:
    """Register a subscriber. Must be called from the subscriber's event loop."""
    subscription = Subscription(workspace_id=workspace_id, loop=asyncio.get_running_loop())
    with self._lock:
      self._subscribers.setdefault(workspace_id, set()).add(subscription)
      total = len(self._subscribers[workspace_id])
    logger.info(f'Live subscriber connected to workspace {workspace_id} ({total} total)')
    return subscription

  def unsubscribe(self, subscription: Subscription) -> None:
    with self._lock:
      subscribers = self._subscribers.get(subscription.workspace_id)
      if subscribers is None:
        return
      subscribers.discard(subscription)
      if not subscribers:
        del self._subscribers[subscription.workspace_id]
    logger.info(f'Live subscriber disconnected from workspace {subscription.workspace_id}')

  def subscriber_count(self, workspace_id: str) -> int:
    with self._lock:
      return len(self._subscribers.get(workspace_id, ()))

  def publish(self, workspace_id: str, events: List[Dict[str, Any]]) -> int:
    """Queue one message per event for every subscriber of the workspace.

    Safe to call from any thread.

    Returns:
        Number of subscribers the messages were handed to
    """
    with self._lock:
      subscribers = list(self._subscribers.get(workspace_id, ()))

    delivered = 0
    for subscription in subscribers:
      try:
        for event in events:
          subscription.loop.call_soon_threadsafe(_offer, subscription.queue, event_message(event))
        delivered += 1
      except RuntimeError:
        # Loop already closed; the connection is gone
        self.unsubscribe(subscription)
    return delivered
