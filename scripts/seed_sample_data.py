"""Sample Data Seeding Script for local development and demos.

Creates a workspace with an ingestion API key and fills it with synthetic
events spread over the last N days, so dashboards have something to show.

Usage:
- python scripts/seed_sample_data.py seed --events 500 --days 30
- python scripts/seed_sample_data.py summary --workspace-id <id>
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from analytics_server.lib.database import get_database_url, get_session_factory, init_db
from analytics_server.lib.errors import AnalyticsError
from analytics_server.models.event import utc_now
from analytics_server.services.event_store import MAX_BATCH_SIZE
from analytics_server.services.ingestion import IngestionGate
from analytics_server.services.query_engine import QueryEngine
from analytics_server.services.workspace_service import WorkspaceService

# Load environment variables from .env.local
env_path = Path(__file__).parent.parent / '.env.local'
console = Console()
if env_path.exists():
  load_dotenv(env_path)
  console.print(f'[dim]Loaded environment from {env_path}[/dim]')

EVENT_TYPES = ['page_view', 'click', 'form_submit', 'api_call', 'error']
EVENT_NAMES = [
  'Dashboard View',
  'User Login',
  'Report Generated',
  'Export Data',
  'Settings Updated',
  'Chart Interaction',
  'Filter Applied',
  'Search Query',
  'Button Click',
  'Form Submission',
]
SOURCES = ['marketing-site', 'web-app', 'mobile-app', 'public-api']


def generate_sample_events(
  count: int, days: int, now: Optional[datetime] = None, seed: Optional[int] = None
) -> List[Dict]:
  """Build synthetic event payloads with timestamps in the last `days` days.

  About half of the events are anonymous; the rest come from 100 users.
  """
  rng = random.Random(seed)
  now = now or utc_now()
  events = []
  for _ in range(count):
    timestamp = now - timedelta(
      days=rng.randrange(days), hours=rng.randrange(24), minutes=rng.randrange(60)
    )
    events.append(
      {
        'event_name': rng.choice(EVENT_NAMES),
        'event_type': rng.choice(EVENT_TYPES),
        'user_id': f'user_{rng.randrange(100)}' if rng.random() > 0.5 else None,
        'session_id': f'session_{rng.randrange(50)}',
        'source': rng.choice(SOURCES),
        'timestamp': max(timestamp, now - timedelta(days=days)),
        'properties': {'page': f'/page-{rng.randrange(10)}', 'duration': rng.randrange(300)},
        'ip_address': f'192.168.{rng.randrange(255)}.{rng.randrange(255)}',
        'user_agent': 'Mozilla/5.0',
      }
    )
  return events


@click.group()
def cli():
  """Seed and inspect demo analytics data."""
  pass


@cli.command()
@click.option('--name', default='Demo Workspace', help='Workspace name')
@click.option('--plan', default='pro', help='Plan tier (free, pro, business, enterprise)')
@click.option('--events', 'event_count', default=500, type=int, help='Number of sample events')
@click.option('--days', default=30, type=int, help='Spread events over the last N days')
@click.option('--seed', 'random_seed', default=None, type=int, help='Random seed for repeatable data')
def seed(name, plan, event_count, days, random_seed):
  """Create a workspace, an API key and sample events."""
  console.print(f'\n[bold]Seeding sample data into {get_database_url()}[/bold]')

  init_db()
  SessionFactory = get_session_factory()

  try:
    with SessionFactory() as db:
      console.print('[cyan]1. Creating workspace...[/cyan]')
      workspaces = WorkspaceService(db)
      workspace = workspaces.create_workspace(name, plan=plan)
      api_key = workspaces.create_api_key(workspace.id, 'Demo key')

      console.print(f'[cyan]2. Ingesting {event_count} events...[/cyan]')
      payloads = generate_sample_events(event_count, days, seed=random_seed)
      gate = IngestionGate(db)
      stored = 0
      for start in range(0, len(payloads), MAX_BATCH_SIZE):
        stored += gate.ingest_batch(workspace.id, payloads[start : start + MAX_BATCH_SIZE]).stored

      console.print('\n[green]✓ Sample data created successfully![/green]')
      console.print(f'  Workspace: {workspace.id} ({workspace.slug})')
      console.print(f'  API key: {api_key.key}')
      console.print(f'  Events: {stored}')
  except AnalyticsError as e:
    console.print(f'[red]Error seeding sample data: {e.message}[/red]')
    sys.exit(1)


@cli.command()
@click.option('--workspace-id', required=True, help='Workspace to summarize')
@click.option('--days', default=30, type=int, help='Window size in days')
def summary(workspace_id, days):
  """Print totals and top events for a workspace."""
  SessionFactory = get_session_factory()
  end = utc_now()
  start = end - timedelta(days=days)

  try:
    with SessionFactory() as db:
      engine = QueryEngine(db)
      stats = engine.stats(workspace_id, start, end)
      top = engine.top_events(workspace_id, start, end, limit=10)
  except AnalyticsError as e:
    console.print(f'[red]Error reading analytics: {e.message}[/red]')
    sys.exit(1)

  console.print(
    f'\n[bold]Last {days} days:[/bold] {stats["total_events"]} events, '
    f'{stats["unique_users"]} unique users'
  )
  table = Table(title='Top Events')
  table.add_column('Event', style='cyan')
  table.add_column('Count', justify='right')
  for row in top:
    table.add_row(row['event_name'], str(row['count']))
  console.print(table)


if __name__ == '__main__':
  cli()
