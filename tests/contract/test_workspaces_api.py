"""Contract tests for workspace, API key, billing and saved configuration endpoints."""

import pytest

pytestmark = pytest.mark.contract


class TestWorkspaces:
  def test_pricing(self, client):
    response = client.get('/api/billing/pricing')

    assert response.status_code == 200
    assert set(response.json()) == {'free', 'pro', 'business', 'enterprise'}
    assert response.json()['free']['event_quota'] == 10_000

  def test_create_workspace(self, client, test_db_engine):
    response = client.post('/api/workspaces', json={'name': 'Umbrella Corp', 'plan': 'business'})

    assert response.status_code == 201
    body = response.json()
    assert body['slug'] == 'umbrella-corp'
    assert body['event_quota'] == 5_000_000
    assert body['event_count'] == 0

  def test_invalid_plan_is_400(self, client, test_db_engine):
    response = client.post('/api/workspaces', json={'name': 'Bad', 'plan': 'gold'})

    assert response.status_code == 400

  def test_billing_plan_change(self, client, workspace):
    response = client.patch(f'/api/workspaces/{workspace.id}', json={'plan': 'pro'})

    assert response.status_code == 200
    assert response.json()['event_quota'] == 500_000

  def test_explicit_quota(self, client, workspace):
    response = client.patch(f'/api/workspaces/{workspace.id}', json={'eventQuota': 123})

    assert response.json()['event_quota'] == 123


class TestApiKeys:
  def test_key_revealed_only_on_create(self, client, workspace):
    created = client.post(f'/api/workspaces/{workspace.id}/api-keys', json={'name': 'Server'})

    assert created.status_code == 201
    assert created.json()['key'].startswith('sfs_')

    listed = client.get(f'/api/workspaces/{workspace.id}/api-keys').json()
    assert len(listed) == 1
    assert 'key' not in listed[0]
    assert listed[0]['key_preview'].endswith(created.json()['key'][-4:])

  def test_new_key_authenticates_ingestion(self, client, workspace):
    key = client.post(f'/api/workspaces/{workspace.id}/api-keys', json={'name': 'Server'}).json()['key']

    response = client.post('/api/events', json={'event_name': 'x'}, headers={'X-API-Key': key})

    assert response.status_code == 201
    assert response.json()['workspace_id'] == workspace.id

  def test_deleted_key_no_longer_works(self, client, workspace, api_key, api_headers):
    response = client.delete(f'/api/workspaces/{workspace.id}/api-keys/{api_key.id}')
    assert response.json() == {'success': True}

    response = client.post('/api/events', json={'event_name': 'x'}, headers=api_headers)

    assert response.status_code == 403


class TestSavedItems:
  def test_report_lifecycle(self, client, workspace):
    base = f'/api/workspaces/{workspace.id}/reports'

    report = client.post(base, json={'name': 'Weekly', 'config': {'range': '7d'}}).json()
    assert report['type'] == 'on-demand'

    patched = client.patch(f'{base}/{report["id"]}', json={'name': 'Weekly KPIs'}).json()
    assert patched['name'] == 'Weekly KPIs'
    assert patched['config'] == {'range': '7d'}

    assert client.delete(f'{base}/{report["id"]}').json() == {'success': True}
    assert client.get(f'{base}/{report["id"]}').status_code == 404

  def test_dashboard_and_alert(self, client, workspace):
    dashboard = client.post(
      f'/api/workspaces/{workspace.id}/dashboards', json={'name': 'Main', 'layout': {'widgets': []}}
    )
    alert = client.post(
      f'/api/workspaces/{workspace.id}/alerts',
      json={'name': 'Spike', 'condition': {'metric': 'events', 'above': 100}},
    )

    assert dashboard.status_code == 201
    assert alert.status_code == 201
    assert alert.json()['is_active'] is True
    assert len(client.get(f'/api/workspaces/{workspace.id}/dashboards').json()) == 1
    assert client.get(f'/api/workspaces/{workspace.id}/alerts/{alert.json()["id"]}').status_code == 200

  def test_alert_requires_condition(self, client, workspace):
    response = client.post(f'/api/workspaces/{workspace.id}/alerts', json={'name': 'Spike'})

    assert response.status_code == 422

  def test_records_are_tenant_scoped(self, client, workspace, other_workspace):
    report_id = client.post(f'/api/workspaces/{workspace.id}/reports', json={'name': 'R'}).json()['id']

    response = client.get(f'/api/workspaces/{other_workspace.id}/reports/{report_id}')

    assert response.status_code == 404
