"""Domain exceptions shared by services and mapped to HTTP responses in app.py."""

from typing import Any, Dict, List, Optional


class AnalyticsError(Exception):
  """Base class for errors surfaced to API callers."""

  status_code = 500
  error_code = 'INTERNAL_ERROR'

  def __init__(self, message: str):
    super().__init__(message)
    self.message = message

  def to_dict(self) -> Dict[str, Any]:
    return {'error_code': self.error_code, 'message': self.message}


class ValidationError(AnalyticsError):
  """Malformed event, oversized batch, bad query parameters or unknown tenant.

  Raised before any durable mutation; never retried.
  """

  status_code = 400
  error_code = 'VALIDATION_ERROR'

  def __init__(
    self,
    message: str,
    item_index: Optional[int] = None,
    details: Optional[List[Dict[str, Any]]] = None,
  ):
    super().__init__(message)
    self.item_index = item_index
    self.details = details or []

  def to_dict(self) -> Dict[str, Any]:
    data = super().to_dict()
    if self.item_index is not None:
      data['item_index'] = self.item_index
    if self.details:
      data['details'] = self.details
    return data


class BatchTooLargeError(ValidationError):
  status_code = 413
  error_code = 'BATCH_TOO_LARGE'

  def __init__(self, received: int, max_batch_size: int):
    super().__init__(f'Batch size exceeds maximum of {max_batch_size} events (received: {received})')
    self.received = received
    self.max_batch_size = max_batch_size

  def to_dict(self) -> Dict[str, Any]:
    data = super().to_dict()
    data.update({'max_batch_size': self.max_batch_size, 'received': self.received})
    return data


class QuotaExceededError(AnalyticsError):
  """The workspace has no room left in its plan's event quota."""

  status_code = 429
  error_code = 'QUOTA_EXCEEDED'

  def __init__(self, current_count: int, quota: int, plan: str):
    super().__init__(
      f'Your workspace has reached its limit of {quota} events. Please upgrade your plan.'
    )
    self.current_count = current_count
    self.quota = quota
    self.plan = plan

  def to_dict(self) -> Dict[str, Any]:
    data = super().to_dict()
    data.update({'current_count': self.current_count, 'quota': self.quota, 'plan': self.plan})
    return data


class NotFoundError(AnalyticsError):
  status_code = 404
  error_code = 'NOT_FOUND'

  def __init__(self, resource: str, resource_id: str):
    super().__init__(f'{resource} not found: {resource_id}')
    self.resource = resource
    self.resource_id = resource_id

  def to_dict(self) -> Dict[str, Any]:
    data = super().to_dict()
    data.update({'resource': self.resource, 'resource_id': self.resource_id})
    return data


class StorageError(AnalyticsError):
  """The event store or another backend is unreachable or failing."""

  status_code = 503
  error_code = 'STORAGE_ERROR'


class AuthenticationError(AnalyticsError):
  """Missing API key."""

  status_code = 401
  error_code = 'AUTH_MISSING'


class InvalidCredentialsError(AuthenticationError):
  """Unknown, inactive or expired API key."""

  status_code = 403
  error_code = 'AUTH_INVALID'
