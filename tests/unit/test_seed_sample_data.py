"""Unit tests for the sample data seeding script."""

from datetime import datetime, timedelta

from click.testing import CliRunner
from sqlalchemy import func, select

from analytics_server.models.event import Event, utc_now
from analytics_server.models.workspace import Workspace
from scripts.seed_sample_data import cli, generate_sample_events

NOW = datetime(2024, 3, 15, 12, 0)


class TestGenerateSampleEvents:
  def test_events_fall_inside_window(self):
    events = generate_sample_events(200, days=7, now=NOW, seed=1)

    assert len(events) == 200
    assert all(NOW - timedelta(days=7) <= e['timestamp'] <= NOW for e in events)
    assert all(e['event_name'] for e in events)

  def test_seed_makes_output_repeatable(self):
    assert generate_sample_events(20, days=3, now=NOW, seed=7) == generate_sample_events(
      20, days=3, now=NOW, seed=7
    )

  def test_mix_of_anonymous_and_identified_users(self):
    events = generate_sample_events(200, days=7, now=NOW, seed=3)
    user_ids = {e['user_id'] for e in events}

    assert None in user_ids
    assert len(user_ids) > 1


class TestCli:
  def test_seed_creates_workspace_and_events(self, test_db_engine, test_db_session):
    result = CliRunner().invoke(cli, ['seed', '--name', 'Demo', '--events', '1200', '--seed', '5'])

    assert result.exit_code == 0, result.output
    assert 'Sample data created' in result.output

    workspace = test_db_session.scalar(select(Workspace).where(Workspace.slug == 'demo'))
    assert workspace is not None
    assert workspace.event_count == 1200
    assert (
      test_db_session.scalar(
        select(func.count(Event.id)).where(Event.workspace_id == workspace.id)
      )
      == 1200
    )

  def test_seed_fails_cleanly_on_duplicate_workspace(self, test_db_engine, workspace):
    result = CliRunner().invoke(cli, ['seed', '--name', 'Acme Corp', '--events', '5'])

    assert result.exit_code == 1
    assert 'Error seeding sample data' in result.output

  def test_summary_prints_top_events(self, test_db_engine, workspace, add_events):
    recent = utc_now() - timedelta(days=1)
    add_events(workspace.id, [('Signup', 'u1', recent), ('Signup', 'u2', recent)])

    result = CliRunner().invoke(cli, ['summary', '--workspace-id', workspace.id, '--days', '7'])

    assert result.exit_code == 0, result.output
    assert '2 events' in result.output
    assert 'Signup' in result.output
