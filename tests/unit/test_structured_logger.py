"""Unit tests for JSON log formatting and request context propagation."""

import json
import logging

from analytics_server.lib.request_context import set_correlation_id, set_workspace_id
from analytics_server.lib.structured_logger import JSONFormatter, StructuredLogger, configure_logging


def _format(record_name='analytics_server.test', message='hello', **extra):
  record = logging.LogRecord(record_name, logging.INFO, __file__, 1, message, None, None)
  for key, value in extra.items():
    setattr(record, key, value)
  return json.loads(JSONFormatter().format(record))


def test_includes_correlation_and_workspace_from_context():
  set_correlation_id('req-123')
  set_workspace_id('ws_1')

  payload = _format()

  assert payload['request_id'] == 'req-123'
  assert payload['workspace_id'] == 'ws_1'
  assert payload['level'] == 'INFO'
  assert payload['timestamp'].endswith('Z')


def test_outside_request_has_placeholder_id():
  payload = _format()

  assert payload['request_id'] == 'no-request-id'
  assert 'workspace_id' not in payload


def test_context_fields_promoted():
  payload = _format(event_count=3, step='broadcast', degraded=['broadcast'])

  assert payload['event_count'] == 3
  assert payload['step'] == 'broadcast'
  assert payload['degraded'] == ['broadcast']


def test_sensitive_context_is_dropped(caplog):
  logger = StructuredLogger('analytics_server.test')

  with caplog.at_level(logging.INFO, logger='analytics_server.test'):
    logger.info('Key used', workspace_id='ws_1', api_key='sfs_secret')

  record = caplog.records[-1]
  assert record.workspace_id == 'ws_1'
  assert not hasattr(record, 'api_key')


def test_configure_logging_is_idempotent():
  first = configure_logging('DEBUG')
  handler_count = len(first.handlers)

  second = configure_logging('INFO')

  assert second is first
  assert len(second.handlers) == handler_count
  assert second.level == logging.INFO
