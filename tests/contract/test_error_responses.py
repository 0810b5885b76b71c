"""Contract tests for error bodies, correlation IDs, health and metrics endpoints."""

import re
from unittest.mock import patch

import pytest

from analytics_server.lib.errors import StorageError

pytestmark = pytest.mark.contract

UUID_PATTERN = re.compile(
  r'^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$', re.IGNORECASE
)


class TestCorrelationId:
  def test_generated_when_missing(self, client):
    response = client.get('/health')

    assert UUID_PATTERN.match(response.headers['X-Correlation-ID'])

  def test_client_value_preserved(self, client):
    response = client.get('/api/health', headers={'X-Correlation-ID': 'trace-abc'})

    assert response.headers['X-Correlation-ID'] == 'trace-abc'

  def test_error_body_carries_request_id(self, client, test_db_engine):
    response = client.get('/api/workspaces/missing', headers={'X-Correlation-ID': 'trace-404'})

    assert response.status_code == 404
    assert response.json()['request_id'] == 'trace-404'


class TestErrorMapping:
  def test_not_found_body(self, client, test_db_engine):
    body = client.get('/api/workspaces/missing').json()

    assert body['error_code'] == 'NOT_FOUND'
    assert body['resource'] == 'Workspace'
    assert body['resource_id'] == 'missing'

  def test_storage_failure_is_503(self, client, workspace):
    with patch(
      'analytics_server.services.query_engine.QueryEngine.stats',
      side_effect=StorageError('Failed to compute stats'),
    ):
      response = client.get(f'/api/workspaces/{workspace.id}/analytics/stats')

    assert response.status_code == 503
    assert response.json()['error_code'] == 'STORAGE_ERROR'

  def test_non_ingestion_validation_keeps_422(self, client, test_db_engine):
    response = client.post('/api/workspaces', json={})

    assert response.status_code == 422
    assert 'detail' in response.json()


class TestHealthAndMetrics:
  def test_health(self, client):
    assert client.get('/health').json() == {'status': 'healthy'}
    assert client.get('/api/health').json() == {'status': 'healthy'}

  def test_metrics_exposes_prometheus_text(self, client, api_headers):
    client.post('/api/events', json={'event_name': 'signup'}, headers=api_headers)

    response = client.get('/metrics')

    assert response.status_code == 200
    assert 'events_ingested_total' in response.text
    assert 'request_duration_seconds' in response.text
