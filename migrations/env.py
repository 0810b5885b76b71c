import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from analytics_server.lib.database import Base, get_database_url
import analytics_server.models  # noqa: F401

# Load environment variables from .env / .env.local
load_dotenv(dotenv_path='.env')
load_dotenv(dotenv_path='.env.local')

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# DATABASE_URL wins over alembic.ini
if os.getenv('DATABASE_URL') or not config.get_main_option('sqlalchemy.url'):
  config.set_main_option('sqlalchemy.url', get_database_url())

# Interpret the config file for Python logging.
if config.config_file_name is not None:
  fileConfig(config.config_file_name)

# Model metadata for 'autogenerate' support
target_metadata = Base.metadata


def run_migrations_offline() -> None:
  """Run migrations in 'offline' mode.

  This configures the context with just a URL and not an Engine, so calls
  to context.execute() emit the given string to the script output.
  """
  url = config.get_main_option('sqlalchemy.url')
  context.configure(
    url=url,
    target_metadata=target_metadata,
    literal_binds=True,
    dialect_opts={'paramstyle': 'named'},
  )

  with context.begin_transaction():
    context.run_migrations()


def run_migrations_online() -> None:
  """Run migrations in 'online' mode against DATABASE_URL."""
  connectable = engine_from_config(
    config.get_section(config.config_ini_section, {}),
    prefix='sqlalchemy.',
    poolclass=pool.NullPool,
  )

  with connectable.connect() as connection:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
      context.run_migrations()


if context.is_offline_mode():
  run_migrations_offline()
else:
  run_migrations_online()
