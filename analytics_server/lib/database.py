"""Database Connection Module

Provides the declarative base, a SQLAlchemy engine with connection pooling and
per-request sessions for FastAPI dependency injection.

Postgres (via psycopg) is the production store. SQLite is supported for local
development and tests.
"""

import os
from typing import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

Base = declarative_base()

DEFAULT_DATABASE_URL = 'sqlite:///./analytics.db'


def get_database_url() -> str:
  """Read the connection string from DATABASE_URL.

  Plain ``postgresql://`` URLs are rewritten to the psycopg (v3) driver.

  Returns:
      SQLAlchemy connection string
  """
  url = os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL)
  if url.startswith('postgres://'):
    url = 'postgresql://' + url[len('postgres://') :]
  if url.startswith('postgresql://'):
    url = 'postgresql+psycopg://' + url[len('postgresql://') :]
  return url


def is_database_configured() -> bool:
  """Check whether an explicit DATABASE_URL is set.

  The SQLite fallback keeps local development working without one.
  """
  return bool(os.getenv('DATABASE_URL'))


def create_db_engine(
  connection_string: str | None = None,
  pool_size: int | None = None,
  max_overflow: int | None = None,
  pool_pre_ping: bool = True,
) -> Engine:
  """Create a SQLAlchemy engine.

  Args:
      connection_string: Database URL (read from DATABASE_URL if None)
      pool_size: Connections kept in the pool (Postgres only, DB_POOL_SIZE)
      max_overflow: Overflow connections beyond pool_size (DB_MAX_OVERFLOW)
      pool_pre_ping: Test connections before use to detect stale ones

  Returns:
      Configured engine

  Example:
      engine = create_db_engine('sqlite://')  # in-memory, shared across threads
  """
  if connection_string is None:
    connection_string = get_database_url()

  if connection_string.startswith('sqlite'):
    sqlite_options = {'connect_args': {'check_same_thread': False}, 'echo': False}
    if connection_string in ('sqlite://', 'sqlite:///:memory:'):
      # Single shared connection, otherwise every connection sees its own empty database
      sqlite_options['poolclass'] = StaticPool
    engine = create_engine(connection_string, **sqlite_options)

    @event.listens_for(engine, 'connect')
    def enable_foreign_keys(dbapi_connection, connection_record):
      cursor = dbapi_connection.cursor()
      cursor.execute('PRAGMA foreign_keys=ON')
      cursor.close()

    return engine

  return create_engine(
    connection_string,
    poolclass=QueuePool,
    pool_size=pool_size or int(os.getenv('DB_POOL_SIZE', '10')),
    max_overflow=max_overflow or int(os.getenv('DB_MAX_OVERFLOW', '10')),
    pool_pre_ping=pool_pre_ping,
    pool_recycle=3600,  # Recycle connections after 1 hour
    echo=False,
  )


# Global engine instance (lazy-initialized)
_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
  """Get or create the global engine instance."""
  global _engine
  if _engine is None:
    _engine = create_db_engine()
  return _engine


def get_session_factory() -> sessionmaker:
  """Get the session factory bound to the global engine.

  Usage:
      SessionFactory = get_session_factory()
      with SessionFactory() as session:
          workspace = session.get(Workspace, workspace_id)
  """
  global _session_factory
  if _session_factory is None:
    _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
  return _session_factory


def configure_engine(engine: Engine) -> None:
  """Replace the global engine (used by the app lifespan and by tests)."""
  global _engine, _session_factory
  _engine = engine
  _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine | None = None) -> None:
  """Create all tables that do not exist yet.

  Production deployments run the alembic migrations instead.
  """
  # Register every model on Base.metadata before create_all
  import analytics_server.models  # noqa: F401

  Base.metadata.create_all(engine or get_engine(), checkfirst=True)


def get_db_session() -> Generator[Session, None, None]:
  """Get a database session for dependency injection.

  Yields:
      Session that is committed on success and rolled back on error

  Usage (FastAPI):
      @router.get('/workspaces/{workspace_id}')
      def get_workspace(workspace_id: str, db: Session = Depends(get_db_session)):
          ...
  """
  SessionFactory = get_session_factory()
  session = SessionFactory()
  try:
    yield session
    session.commit()
  except Exception:
    session.rollback()
    raise
  finally:
    session.close()
