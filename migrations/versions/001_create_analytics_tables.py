"""Create analytics tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
  op.create_table(
    'workspaces',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('slug', sa.String(length=255), nullable=False),
    sa.Column('plan', sa.String(length=50), nullable=False, server_default='free'),
    sa.Column('event_quota', sa.Integer(), nullable=False, server_default='10000'),
    sa.Column('event_count', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('slug'),
  )

  op.create_table(
    'api_keys',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('key', sa.String(length=64), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('expires_at', sa.DateTime(), nullable=True),
    sa.Column('last_used_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id']),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('key'),
  )
  op.create_index('ix_api_keys_workspace_id', 'api_keys', ['workspace_id'])

  # Append-only event log; every query filters on workspace_id
  op.create_table(
    'analytics_events',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('event_name', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=100), nullable=False, server_default='custom'),
    sa.Column('user_id', sa.String(length=255), nullable=True),
    sa.Column('session_id', sa.String(length=255), nullable=True),
    sa.Column('source', sa.String(length=255), nullable=True),
    sa.Column('timestamp', sa.DateTime(), nullable=False),
    sa.Column('properties', sa.JSON(), nullable=True),
    sa.Column('ip_address', sa.String(length=64), nullable=True),
    sa.Column('user_agent', sa.Text(), nullable=True),
    sa.Column('url', sa.Text(), nullable=True),
    sa.Column('referrer', sa.Text(), nullable=True),
    sa.Column('country', sa.String(length=64), nullable=True),
    sa.Column('device', sa.String(length=64), nullable=True),
    sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id']),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index(
    'ix_analytics_events_workspace_timestamp', 'analytics_events', ['workspace_id', 'timestamp']
  )
  op.create_index(
    'ix_analytics_events_workspace_name', 'analytics_events', ['workspace_id', 'event_name']
  )
  op.create_index(
    'ix_analytics_events_workspace_user', 'analytics_events', ['workspace_id', 'user_id']
  )

  op.create_table(
    'funnels',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('steps', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id']),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_funnels_workspace_id', 'funnels', ['workspace_id'])

  op.create_table(
    'reports',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('type', sa.String(length=50), nullable=False, server_default='on-demand'),
    sa.Column('config', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id']),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_reports_workspace_id', 'reports', ['workspace_id'])

  op.create_table(
    'dashboards',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('layout', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id']),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_dashboards_workspace_id', 'dashboards', ['workspace_id'])

  op.create_table(
    'alerts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('condition', sa.JSON(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('updated_at', sa.DateTime(), nullable=False),
    sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id']),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_alerts_workspace_id', 'alerts', ['workspace_id'])


def downgrade():
  for table in ('alerts', 'dashboards', 'reports', 'funnels'):
    op.drop_index(f'ix_{table}_workspace_id', table_name=table)
    op.drop_table(table)

  op.drop_index('ix_analytics_events_workspace_user', table_name='analytics_events')
  op.drop_index('ix_analytics_events_workspace_name', table_name='analytics_events')
  op.drop_index('ix_analytics_events_workspace_timestamp', table_name='analytics_events')
  op.drop_table('analytics_events')

  op.drop_index('ix_api_keys_workspace_id', table_name='api_keys')
  op.drop_table('api_keys')
  op.drop_table('workspaces')
