"""FastAPI application for the analytics engine."""

import os
import re
import time
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from analytics_server.lib.cache import ResultCache
from analytics_server.lib.database import get_engine, init_db, is_database_configured
from analytics_server.lib.errors import AnalyticsError, BatchTooLargeError, ValidationError
from analytics_server.lib.metrics import record_request_duration
from analytics_server.lib.request_context import get_correlation_id, set_correlation_id, set_workspace_id
from analytics_server.lib.structured_logger import StructuredLogger, configure_logging, log_request
from analytics_server.routers import live_router, router
from analytics_server.services.event_store import MAX_BATCH_SIZE
from analytics_server.services.live_feed import LiveFeedBroker

logger = StructuredLogger(__name__)

DEFAULT_CORS_ORIGINS = (
  'http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000'
)


# Load environment variables from .env.local if it exists
def load_env_file(filepath: str) -> None:
  """Load environment variables from a file.

  Variables already set in the environment win over the file.
  """
  if Path(filepath).exists():
    with open(filepath) as f:
      for line in f:
        line = line.strip()
        if line and not line.startswith('#'):
          key, _, value = line.partition('=')
          if key and value:
            os.environ.setdefault(key.strip(), value.strip())


# Load .env files
load_env_file('.env')
load_env_file('.env.local')


@asynccontextmanager
async def lifespan(app: FastAPI):
  """Create the per-process collaborators: schema, result cache and live broker."""
  configure_logging()
  if not is_database_configured():
    logger.warning('DATABASE_URL not set, using the local SQLite database')
  init_db(get_engine())
  app.state.result_cache = ResultCache()
  app.state.live_broker = LiveFeedBroker()
  logger.info('Analytics engine started')
  yield
  app.state.result_cache.clear()


app = FastAPI(
  title='Analytics Engine API',
  description='Multi-tenant product analytics: event ingestion, dashboards and live feed',
  version='0.1.0',
  lifespan=lifespan,
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=[o.strip() for o in os.getenv('CORS_ORIGINS', DEFAULT_CORS_ORIGINS).split(',')],
  allow_credentials=True,
  allow_methods=['*'],
  allow_headers=['*'],
)


@app.middleware('http')
async def add_correlation_id(request: Request, call_next):
  """Inject correlation ID into request context and time the request.

  - Extracts X-Correlation-ID header or generates new UUID
  - Sets correlation ID in context for logging
  - Adds X-Correlation-ID to response headers
  - Records request duration and logs the request
  """
  correlation_id = request.headers.get('X-Correlation-ID', str(uuid4()))
  set_correlation_id(correlation_id)
  set_workspace_id(None)
  request.state.correlation_id = correlation_id

  start_time = time.time()
  response = await call_next(request)
  duration_seconds = time.time() - start_time

  response.headers['X-Correlation-ID'] = correlation_id

  # Skip health and metrics endpoints to reduce noise
  if request.url.path not in ['/health', '/api/health', '/metrics']:
    route = request.scope.get('route')
    endpoint = getattr(route, 'path', request.url.path)
    record_request_duration(
      endpoint=endpoint,
      method=request.method,
      status=response.status_code,
      duration_seconds=duration_seconds,
    )
    log_request(
      endpoint=endpoint,
      method=request.method,
      status_code=response.status_code,
      duration_ms=duration_seconds * 1000,
      workspace_id=request.scope.get('path_params', {}).get('workspace_id'),
    )

  return response


@app.get('/health')
async def health_root():
  """Health check endpoint at root level (for load balancers)."""
  return {'status': 'healthy'}


@app.get('/api/health')
async def health_api():
  """Health check endpoint under /api prefix."""
  return {'status': 'healthy'}


@app.get('/metrics')
async def metrics_root():
  """Prometheus metrics endpoint (ingestion, query, cache and request metrics)."""
  return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


def _error_response(exc: AnalyticsError) -> JSONResponse:
  return JSONResponse(
    status_code=exc.status_code,
    content={**exc.to_dict(), 'request_id': get_correlation_id()},
  )


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError):
  """Map domain errors to their HTTP status with a structured body."""
  if exc.status_code >= 500:
    logger.error(
      f'{exc.error_code}: {exc.message}', endpoint=request.url.path, error_type=type(exc).__name__
    )
  else:
    logger.info(
      f'Request rejected: {exc.error_code}',
      endpoint=request.url.path,
      status_code=exc.status_code,
    )
  return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
  """Translate request validation errors.

  - Oversized batches become 413 BATCH_TOO_LARGE
  - Malformed ingestion bodies become 400 VALIDATION_ERROR, carrying the
    index of the first bad item for batches
  - Anything else keeps the default 422 response
  """
  errors = jsonable_encoder(exc.errors())

  for error in errors:
    error_msg = error.get('msg', '')
    if 'Batch size exceeds maximum' in error_msg:
      match = re.search(r'received: (\d+)', error_msg)
      received_count = int(match.group(1)) if match else None
      return _error_response(BatchTooLargeError(received_count, MAX_BATCH_SIZE))

  if request.url.path.startswith('/api/events'):
    body_errors = [e for e in errors if e.get('loc') and e['loc'][0] == 'body']
    if body_errors:
      first = body_errors[0]
      loc = first['loc']
      item_index = loc[2] if len(loc) > 2 and loc[1] == 'events' and isinstance(loc[2], int) else None
      field = '.'.join(str(part) for part in loc[1:])
      message = f'{field}: {first.get("msg", "invalid value")}'
      if item_index is not None:
        message = f'Event at index {item_index}: {message}'
      return _error_response(ValidationError(message, item_index=item_index, details=body_errors))

  return JSONResponse(status_code=422, content={'detail': errors})


# Include API routers
app.include_router(router, prefix='/api')
app.include_router(live_router)
