"""FastAPI dependencies for process-wide objects created in the app lifespan."""

from fastapi.requests import HTTPConnection

from analytics_server.lib.cache import ResultCache
from analytics_server.services.live_feed import LiveFeedBroker


def get_result_cache(connection: HTTPConnection) -> ResultCache:
  """Return the app's ResultCache (one per process).

  Tests override this dependency to inject their own instance.
  """
  return connection.app.state.result_cache


def get_live_broker(connection: HTTPConnection) -> LiveFeedBroker:
  return connection.app.state.live_broker
