"""
Unit tests for the live feed broker.

Subscribers are registered on the running event loop; publish() may be
called from any thread.
"""

import asyncio
import threading

import pytest

from analytics_server.routers.live import _supervise
from analytics_server.services.live_feed import SUBSCRIBER_QUEUE_SIZE, LiveFeedBroker


# ============================================================================
# Subscription management
# ============================================================================


@pytest.mark.asyncio
async def test_subscribe_and_unsubscribe():
  broker = LiveFeedBroker()

  subscription = broker.subscribe('ws_1')
  assert broker.subscriber_count('ws_1') == 1

  broker.unsubscribe(subscription)
  assert broker.subscriber_count('ws_1') == 0

  # Unsubscribing twice is harmless
  broker.unsubscribe(subscription)


def test_publish_without_subscribers():
  assert LiveFeedBroker().publish('ws_1', [{'event_name': 'x'}]) == 0


# ============================================================================
# Delivery
# ============================================================================


@pytest.mark.asyncio
async def test_publish_only_reaches_same_workspace():
  broker = LiveFeedBroker()
  mine = broker.subscribe('ws_1')
  theirs = broker.subscribe('ws_2')

  delivered = broker.publish('ws_1', [{'event_name': 'signup'}])
  message = await asyncio.wait_for(mine.next_message(), timeout=1)

  assert delivered == 1
  assert message['type'] == 'event'
  assert message['data'] == {'event_name': 'signup'}
  assert message['timestamp'].endswith('Z')
  await asyncio.sleep(0)
  assert theirs.queue.empty()


@pytest.mark.asyncio
async def test_one_message_per_event_in_order():
  broker = LiveFeedBroker()
  subscription = broker.subscribe('ws_1')

  broker.publish('ws_1', [{'n': 1}, {'n': 2}, {'n': 3}])
  received = [(await asyncio.wait_for(subscription.next_message(), timeout=1))['data']['n'] for _ in range(3)]

  assert received == [1, 2, 3]


@pytest.mark.asyncio
async def test_publish_from_worker_thread():
  """Ingestion runs in the threadpool; delivery must still land on the loop."""
  broker = LiveFeedBroker()
  subscription = broker.subscribe('ws_1')

  worker = threading.Thread(target=broker.publish, args=('ws_1', [{'event_name': 'from-thread'}]))
  worker.start()
  worker.join()
  message = await asyncio.wait_for(subscription.next_message(), timeout=1)

  assert message['data']['event_name'] == 'from-thread'


@pytest.mark.asyncio
async def test_slow_subscriber_drops_overflow():
  broker = LiveFeedBroker()
  subscription = broker.subscribe('ws_1')

  broker.publish('ws_1', [{'n': i} for i in range(SUBSCRIBER_QUEUE_SIZE + 5)])
  await asyncio.sleep(0)

  assert subscription.queue.qsize() == SUBSCRIBER_QUEUE_SIZE


def test_closed_loop_subscriber_is_removed():
  broker = LiveFeedBroker()
  loop = asyncio.new_event_loop()
  subscription = loop.run_until_complete(_subscribe(broker, 'ws_1'))
  loop.close()

  delivered = broker.publish('ws_1', [{'event_name': 'x'}])

  assert delivered == 0
  assert broker.subscriber_count('ws_1') == 0
  assert subscription.workspace_id == 'ws_1'


async def _subscribe(broker, workspace_id):
  return broker.subscribe(workspace_id)


# ============================================================================
# WebSocket session supervision
# ============================================================================


@pytest.mark.asyncio
async def test_supervise_awaits_cancelled_tasks_and_collects_errors():
  cleanup_finished = asyncio.Event()

  async def client_disconnects():
    raise ConnectionResetError('client went away')

  async def forwarder_fails_on_cleanup():
    try:
      await asyncio.Event().wait()
    except asyncio.CancelledError:
      await asyncio.sleep(0)
      cleanup_finished.set()
      raise RuntimeError('send failed during shutdown')

  tasks = [
    asyncio.create_task(client_disconnects()),
    asyncio.create_task(forwarder_fails_on_cleanup()),
  ]

  errors = await _supervise(tasks)

  assert all(task.done() for task in tasks)
  assert cleanup_finished.is_set()
  assert [type(e) for e in errors] == [ConnectionResetError, RuntimeError]


@pytest.mark.asyncio
async def test_supervise_ignores_plain_cancellation():
  async def finishes():
    return None

  async def waits_forever():
    await asyncio.Event().wait()

  tasks = [asyncio.create_task(finishes()), asyncio.create_task(waits_forever())]

  assert await _supervise(tasks) == []
  assert tasks[1].cancelled()
