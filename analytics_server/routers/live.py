"""WebSocket live feed of newly stored events for one workspace.

Protocol:
    server -> {"type": "connected", "workspace_id": ...} once after accept
    server -> {"type": "event", "data": {...}, "timestamp": ...} per stored event
    client -> {"type": "ping"}   server -> {"type": "pong", "timestamp": ...}
"""

import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from analytics_server.lib.database import get_session_factory
from analytics_server.lib.dependencies import get_live_broker
from analytics_server.models.event import utc_now
from analytics_server.models.workspace import Workspace
from analytics_server.services.live_feed import LiveFeedBroker, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=['Live'])

WORKSPACE_NOT_FOUND_CLOSE_CODE = 4404


def _now() -> str:
  return utc_now().isoformat() + 'Z'


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
  while True:
    message = await subscription.next_message()
    await websocket.send_json(message)


async def _handle_client(websocket: WebSocket) -> None:
  while True:
    data = await websocket.receive_text()
    try:
      message = json.loads(data)
    except json.JSONDecodeError:
      await websocket.send_json({'type': 'error', 'message': 'Invalid JSON'})
      continue

    if isinstance(message, dict) and message.get('type') == 'ping':
      await websocket.send_json({'type': 'pong', 'timestamp': _now()})


async def _supervise(tasks: List[asyncio.Task]) -> List[Exception]:
  """Wait for the first task to finish, cancel the rest and collect every outcome.

  Returns:
      Exceptions raised by any of the tasks, cancellations excluded
  """
  try:
    await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
  finally:
    for task in tasks:
      task.cancel()
    results = await asyncio.gather(*tasks, return_exceptions=True)
  return [result for result in results if isinstance(result, Exception)]


@router.websocket('/ws/workspaces/{workspace_id}/live')
async def live_events(
  websocket: WebSocket,
  workspace_id: str,
  broker: LiveFeedBroker = Depends(get_live_broker),
):
  """Stream events for a workspace as they are ingested."""
  with get_session_factory()() as db:
    workspace_exists = db.get(Workspace, workspace_id) is not None

  if not workspace_exists:
    await websocket.close(code=WORKSPACE_NOT_FOUND_CLOSE_CODE)
    return

  await websocket.accept()
  subscription = broker.subscribe(workspace_id)
  await websocket.send_json({'type': 'connected', 'workspace_id': workspace_id, 'timestamp': _now()})

  tasks = [
    asyncio.create_task(_forward_events(websocket, subscription)),
    asyncio.create_task(_handle_client(websocket)),
  ]
  try:
    errors = await _supervise(tasks)
  finally:
    broker.unsubscribe(subscription)

  for error in errors:
    if not isinstance(error, WebSocketDisconnect):
      logger.warning(f'Live feed for workspace {workspace_id} closed with error: {error}')
