"""Structured Logger with JSON Formatting.

Every log line is a single JSON object carrying the request's correlation ID
and, when known, the workspace the request is operating on.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from analytics_server.lib.request_context import get_correlation_id, get_workspace_id

ROOT_LOGGER_NAME = 'analytics_server'

# Never emitted, even when passed as context
SENSITIVE_KEYS = frozenset({'api_key', 'key', 'token', 'password', 'authorization'})

# Context fields promoted from LogRecord attributes into the JSON payload
CONTEXT_FIELDS = (
  'workspace_id',
  'event_id',
  'event_count',
  'duration_ms',
  'endpoint',
  'method',
  'status_code',
  'query_kind',
  'cache_key',
  'step',
  'error_type',
  'degraded',
)


def _utc_timestamp() -> str:
  return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + 'Z'


def _scrub(data: Dict[str, Any]) -> Dict[str, Any]:
  return {k: v for k, v in data.items() if k not in SENSITIVE_KEYS}


class JSONFormatter(logging.Formatter):
  """JSON formatter for structured logging."""

  def format(self, record: logging.LogRecord) -> str:
    log_data = {
      'timestamp': _utc_timestamp(),
      'level': record.levelname,
      'logger': record.name,
      'message': record.getMessage(),
      'module': record.module,
      'function': record.funcName,
      'request_id': get_correlation_id(),
    }

    workspace = get_workspace_id()
    if workspace:
      log_data['workspace_id'] = workspace

    for field in CONTEXT_FIELDS:
      if hasattr(record, field):
        log_data[field] = getattr(record, field)

    if record.exc_info:
      log_data['exception'] = {
        'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
        'message': str(record.exc_info[1]) if record.exc_info[1] else None,
      }

    return json.dumps(_scrub(log_data), default=str)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
  """Attach the JSON handler to the package logger (idempotent).

  Args:
      level: Log level name; falls back to the LOG_LEVEL environment variable

  Returns:
      The configured package logger
  """
  package_logger = logging.getLogger(ROOT_LOGGER_NAME)
  level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
  package_logger.setLevel(getattr(logging, level_name, logging.INFO))

  if not any(isinstance(h.formatter, JSONFormatter) for h in package_logger.handlers):
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    package_logger.addHandler(handler)

  return package_logger


class StructuredLogger:
  """Structured logger with keyword context.

  Usage:
      logger = StructuredLogger(__name__)
      logger.info('Events ingested', workspace_id=ws_id, event_count=10)
      logger.error('Cache invalidation failed', exc_info=True, step='cache_invalidated')
  """

  def __init__(self, name: str):
    self.logger = logging.getLogger(name)

  def info(self, message: str, **extra: Any) -> None:
    self.logger.info(message, extra=_scrub(extra))

  def warning(self, message: str, exc_info: bool = False, **extra: Any) -> None:
    self.logger.warning(message, exc_info=exc_info, extra=_scrub(extra))

  def error(self, message: str, exc_info: bool = False, **extra: Any) -> None:
    self.logger.error(message, exc_info=exc_info, extra=_scrub(extra))

  def debug(self, message: str, **extra: Any) -> None:
    self.logger.debug(message, extra=_scrub(extra))


def log_request(
  endpoint: str, method: str, status_code: int, duration_ms: float, workspace_id: str | None = None
) -> None:
  """Log an API request with its timing."""
  extra = {
    'endpoint': endpoint,
    'method': method,
    'status_code': status_code,
    'duration_ms': round(duration_ms, 2),
  }
  if workspace_id:
    extra['workspace_id'] = workspace_id

  logging.getLogger(f'{ROOT_LOGGER_NAME}.requests').info(f'{method} {endpoint}', extra=extra)
