"""Shared fixtures for contract tests.

The app-level fixtures (client, api_headers, workspace, result_cache,
live_broker) live in tests/conftest.py.
"""

import pytest


@pytest.fixture
def post_event(client, api_headers):
  """POST a single event with the test workspace's API key."""

  def _post(**fields):
    body = {'event_name': 'signup', **fields}
    return client.post('/api/events', json=body, headers=api_headers)

  return _post


@pytest.fixture
def funnel_id(client, workspace):
  response = client.post(
    f'/api/workspaces/{workspace.id}/funnels',
    json={'name': 'Checkout', 'steps': ['view', 'add_to_cart', 'purchase']},
  )
  assert response.status_code == 201
  return response.json()['id']
