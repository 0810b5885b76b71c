"""Contract tests for the ingestion and event log endpoints."""

import pytest
from sqlalchemy import func, select

from analytics_server.models.event import Event

pytestmark = pytest.mark.contract


def _count(session, workspace_id):
  return session.scalar(select(func.count(Event.id)).where(Event.workspace_id == workspace_id))


class TestTrackEvent:
  def test_missing_api_key_is_401(self, client, workspace):
    response = client.post('/api/events', json={'event_name': 'signup'})

    assert response.status_code == 401
    assert response.json()['error_code'] == 'AUTH_MISSING'

  def test_invalid_api_key_is_403(self, client, workspace):
    response = client.post(
      '/api/events', json={'event_name': 'signup'}, headers={'X-API-Key': 'sfs_wrong'}
    )

    assert response.status_code == 403
    assert response.json()['error_code'] == 'AUTH_INVALID'

  def test_event_is_stored_for_key_workspace(self, post_event, workspace, test_db_session):
    response = post_event(userId='u1', properties={'plan': 'pro'}, timestamp='2024-01-01T10:00:00Z')

    assert response.status_code == 201
    body = response.json()
    assert body['workspace_id'] == workspace.id
    assert body['user_id'] == 'u1'
    assert body['event_type'] == 'custom'
    assert body['timestamp'] == '2024-01-01T10:00:00Z'
    assert body['degraded'] == []
    assert body['user_agent'] == 'testclient'
    assert _count(test_db_session, workspace.id) == 1

  def test_missing_event_name_is_400(self, post_event, workspace, test_db_session):
    response = post_event(event_name=None)

    assert response.status_code == 400
    assert response.json()['error_code'] == 'VALIDATION_ERROR'
    assert _count(test_db_session, workspace.id) == 0

  def test_malformed_field_is_400(self, post_event):
    response = post_event(properties='not-an-object')

    assert response.status_code == 400
    assert 'request_id' in response.json()

  def test_quota_exceeded_is_429(self, post_event, workspace, test_db_session):
    workspace.event_count = workspace.event_quota
    test_db_session.commit()

    response = post_event()

    assert response.status_code == 429
    body = response.json()
    assert body['error_code'] == 'QUOTA_EXCEEDED'
    assert body['quota'] == workspace.event_quota
    assert body['plan'] == 'free'
    assert _count(test_db_session, workspace.id) == 0

  def test_rejected_request_does_not_stamp_key(self, post_event, workspace, api_key, test_db_session):
    workspace.event_count = workspace.event_quota
    test_db_session.commit()

    assert post_event().status_code == 429
    assert post_event(timestamp='not a date').status_code == 400

    test_db_session.refresh(api_key)
    assert api_key.last_used_at is None

  def test_accepted_request_stamps_key(self, post_event, api_key, test_db_session):
    assert post_event().status_code == 201

    test_db_session.refresh(api_key)
    assert api_key.last_used_at is not None

  def test_counter_incremented(self, post_event, workspace, test_db_session):
    post_event()
    post_event()

    test_db_session.refresh(workspace)
    assert workspace.event_count == 2


class TestTrackBatch:
  def test_batch_stored(self, client, api_headers, workspace):
    events = [{'event_name': f'e{i}', 'user_id': 'u1'} for i in range(3)]

    response = client.post('/api/events/batch', json={'events': events}, headers=api_headers)

    assert response.status_code == 201
    body = response.json()
    assert body['inserted'] == 3
    assert [e['event_name'] for e in body['events']] == ['e0', 'e1', 'e2']

  def test_oversized_batch_is_413(self, client, api_headers, workspace, test_db_session):
    events = [{'event_name': 'x'}] * 1001

    response = client.post('/api/events/batch', json={'events': events}, headers=api_headers)

    assert response.status_code == 413
    body = response.json()
    assert body['error_code'] == 'BATCH_TOO_LARGE'
    assert body['received'] == 1001
    assert body['max_batch_size'] == 1000
    assert _count(test_db_session, workspace.id) == 0

  def test_invalid_item_reports_index(self, client, api_headers, workspace, test_db_session):
    events = [{'event_name': f'e{i}'} for i in range(10)]
    events[7] = {'user_id': 'u1'}

    response = client.post('/api/events/batch', json={'events': events}, headers=api_headers)

    assert response.status_code == 400
    assert response.json()['item_index'] == 7
    assert _count(test_db_session, workspace.id) == 0

  def test_schema_error_reports_index(self, client, api_headers, workspace):
    events = [{'event_name': 'ok'}, {'event_name': 'bad', 'properties': [1, 2]}]

    response = client.post('/api/events/batch', json={'events': events}, headers=api_headers)

    assert response.status_code == 400
    assert response.json()['item_index'] == 1

  def test_empty_batch_rejected(self, client, api_headers):
    response = client.post('/api/events/batch', json={'events': []}, headers=api_headers)

    assert response.status_code == 400

  def test_batch_over_remaining_quota_is_429(self, client, api_headers, workspace, test_db_session):
    workspace.event_count = workspace.event_quota - 2
    test_db_session.commit()
    events = [{'event_name': 'x'}] * 3

    response = client.post('/api/events/batch', json={'events': events}, headers=api_headers)

    assert response.status_code == 429
    assert _count(test_db_session, workspace.id) == 0


class TestEventLog:
  def test_list_events_most_recent_first(self, client, post_event, workspace):
    post_event(event_name='first', timestamp='2024-01-01T00:00:00Z')
    post_event(event_name='second', timestamp='2024-01-02T00:00:00Z')

    response = client.get(f'/api/workspaces/{workspace.id}/events')

    assert response.status_code == 200
    assert [e['event_name'] for e in response.json()] == ['second', 'first']

  def test_list_events_filters(self, client, post_event, workspace):
    post_event(event_name='signup', user_id='u1')
    post_event(event_name='login', user_id='u1')

    response = client.get(
      f'/api/workspaces/{workspace.id}/events', params={'event_name': 'login', 'limit': 5}
    )

    assert [e['event_name'] for e in response.json()] == ['login']

  def test_limit_out_of_range_is_422(self, client, workspace):
    response = client.get(f'/api/workspaces/{workspace.id}/events', params={'limit': 5000})

    assert response.status_code == 422

  def test_unknown_workspace_is_404(self, client):
    response = client.get('/api/workspaces/missing/events')

    assert response.status_code == 404
    assert response.json()['error_code'] == 'NOT_FOUND'

  def test_get_event(self, client, post_event, workspace, other_workspace):
    event_id = post_event().json()['id']

    assert client.get(f'/api/workspaces/{workspace.id}/events/{event_id}').status_code == 200
    assert client.get(f'/api/workspaces/{other_workspace.id}/events/{event_id}').status_code == 404
