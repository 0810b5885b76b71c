"""Request-scoped context for log correlation.

Correlation IDs and the active workspace are kept in contextvars so they
propagate through async calls and into FastAPI's threadpool.
"""

import contextvars
from typing import Optional

correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
  'request_id', default='no-request-id'
)

workspace_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
  'workspace_id', default=None
)


def get_correlation_id() -> str:
  """Return the current request's correlation ID ('no-request-id' outside a request)."""
  return correlation_id.get()


def set_correlation_id(request_id: str) -> None:
  """Set the correlation ID for the current request context.

  Args:
      request_id: Value of the X-Correlation-ID header or a generated UUID
  """
  correlation_id.set(request_id)


def get_workspace_id() -> Optional[str]:
  """Return the workspace the current request is operating on, if known."""
  return workspace_id.get()


def set_workspace_id(value: Optional[str]) -> None:
  workspace_id.set(value)


def reset_request_context() -> None:
  """Reset both context variables. Used by tests and after request processing."""
  correlation_id.set('no-request-id')
  workspace_id.set(None)
