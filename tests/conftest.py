"""Shared test fixtures and utilities for all tests.

Every test gets a fresh in-memory SQLite database, configured as the global
engine so that request-scoped sessions created by the app see the same data
as the test's own session.
"""

import sys
from datetime import datetime
from pathlib import Path

# Ensure the project root is first in sys.path so `scripts` is importable
project_root = str(Path(__file__).parent.parent.absolute())
if project_root not in sys.path:
  sys.path.insert(0, project_root)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from analytics_server.lib.cache import ResultCache
from analytics_server.lib.database import configure_engine, create_db_engine, init_db
from analytics_server.lib.dependencies import get_live_broker, get_result_cache
from analytics_server.lib.request_context import reset_request_context
from analytics_server.models.event import Event, new_id
from analytics_server.services.live_feed import LiveFeedBroker
from analytics_server.services.workspace_service import WorkspaceService


class FakeClock:
  """Manually advanced clock for TTL tests."""

  def __init__(self, start: float = 1000.0):
    self.now = start

  def __call__(self) -> float:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now += seconds


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def test_db_engine():
  """In-memory SQLite engine with all tables created.

  Also installed as the global engine used by get_db_session.
  """
  engine = create_db_engine('sqlite://')
  init_db(engine)
  configure_engine(engine)

  yield engine

  engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
  """Database session for direct service calls in a test."""
  SessionFactory = sessionmaker(bind=test_db_engine, autoflush=False)
  session = SessionFactory()

  yield session

  session.close()


@pytest.fixture
def workspace(test_db_session):
  """A free-plan workspace."""
  return WorkspaceService(test_db_session).create_workspace('Acme Corp', plan='free')


@pytest.fixture
def other_workspace(test_db_session):
  """A second tenant, for isolation tests."""
  return WorkspaceService(test_db_session).create_workspace('Globex', plan='pro')


@pytest.fixture
def api_key(test_db_session, workspace):
  return WorkspaceService(test_db_session).create_api_key(workspace.id, 'Test key')


@pytest.fixture
def add_events(test_db_session):
  """Insert events directly, bypassing ingestion.

  Usage:
      add_events(ws.id, [('signup', 'u1', datetime(2024, 1, 1)), ...])
  """

  def _add(workspace_id, specs, **extra):
    events = []
    for spec in specs:
      event_name, user_id, timestamp = spec[:3]
      properties = spec[3] if len(spec) > 3 else None
      events.append(
        Event(
          id=new_id(),
          workspace_id=workspace_id,
          event_name=event_name,
          event_type=extra.get('event_type', 'custom'),
          user_id=user_id,
          timestamp=timestamp,
          properties=properties,
          source=extra.get('source'),
        )
      )
    test_db_session.add_all(events)
    test_db_session.commit()
    return events

  return _add


# ============================================================================
# FastAPI Application Fixtures
# ============================================================================


@pytest.fixture
def result_cache():
  return ResultCache()


@pytest.fixture
def live_broker():
  return LiveFeedBroker()


@pytest.fixture
def client(test_db_engine, result_cache, live_broker):
  """TestClient for the real app, wired to the test database and cache."""
  from analytics_server.app import app

  app.dependency_overrides[get_result_cache] = lambda: result_cache
  app.dependency_overrides[get_live_broker] = lambda: live_broker

  yield TestClient(app)

  app.dependency_overrides.clear()


@pytest.fixture
def api_headers(api_key):
  return {'X-API-Key': api_key.key}


@pytest.fixture
def fake_clock():
  return FakeClock()


@pytest.fixture
def fixed_now():
  """Reference instant used by tests that pin the query engine's clock."""
  return datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture(autouse=True)
def clean_request_context():
  """Reset correlation/workspace context between tests."""
  reset_request_context()
  yield
  reset_request_context()
