"""Short-TTL result cache for dashboard queries.

Entries are keyed by tenant, query kind and every parameter that affects the
result. Expiry is age-based and lazy: an expired entry reads as a miss and is
dropped on that read. Writes to a tenant must call ``invalidate_tenant`` so the
next poll recomputes.

Each tenant also has a generation number, bumped by ``invalidate_tenant``. A
reader takes the generation before computing and hands it to ``put``; if an
invalidation happened in between, the computed result is not stored.
"""

import threading
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

DEFAULT_TTL_SECONDS = 30.0

KEY_SEPARATOR = '|'


class _Miss:
  def __repr__(self) -> str:
    return 'MISS'

  def __bool__(self) -> bool:
    return False


# Sentinel returned by ResultCache.get so cached falsy values (0, [], {}) stay hits
MISS = _Miss()


@dataclass
class CacheEntry:
  key: str
  data: Any
  stored_at: float


def _format_param(value: Any) -> str:
  if value is None:
    return ''
  if isinstance(value, (datetime, date)):
    return value.isoformat()
  if isinstance(value, (list, tuple)):
    return ','.join(_format_param(v) for v in value)
  return str(value)


def build_key(workspace_id: str, kind: str, **params: Any) -> str:
  """Build a deterministic cache key.

  Parameters are sorted by name so call order never matters, and the tenant is
  always the first segment so ``invalidate_tenant`` can match on prefix.

  Example:
      build_key('ws_1', 'top-events', start=s, end=e, limit=10)
      -> 'workspace:ws_1|top-events|end=...|limit=10|start=...'
  """
  if not workspace_id:
    raise ValueError('workspace_id is required to build a cache key')

  parts = [f'workspace:{workspace_id}', kind]
  parts.extend(f'{name}={_format_param(params[name])}' for name in sorted(params))
  return KEY_SEPARATOR.join(parts)


def tenant_prefix(workspace_id: str) -> str:
  return f'workspace:{workspace_id}{KEY_SEPARATOR}'


def _tenant_of(key: str) -> Optional[str]:
  head, sep, _ = key.partition(KEY_SEPARATOR)
  if not sep or not head.startswith('workspace:'):
    return None
  return head[len('workspace:'):]


class ResultCache:
  """Thread-safe TTL cache shared by all request handlers of a process.

  Args:
      ttl_seconds: Maximum entry age for a hit
      clock: Monotonic time source (injectable for tests)
  """

  def __init__(
    self,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
  ):
    self.ttl_seconds = ttl_seconds
    self._clock = clock
    self._entries: Dict[str, CacheEntry] = {}
    self._generations: Dict[str, int] = {}
    self._lock = threading.Lock()

  def generation(self, workspace_id: str) -> int:
    """Current invalidation generation of a workspace."""
    with self._lock:
      return self._generations.get(workspace_id, 0)

  def get(self, key: str) -> Any:
    """Return cached data, or ``MISS`` if absent or older than the TTL."""
    with self._lock:
      entry = self._entries.get(key)
      if entry is None:
        return MISS
      if self._clock() - entry.stored_at >= self.ttl_seconds:
        del self._entries[key]
        return MISS
      return entry.data

  def put(self, key: str, data: Any, generation: Optional[int] = None) -> bool:
    """Store data under key, overwriting any existing entry.

    Args:
        key: Cache key built with ``build_key``
        data: Value to store
        generation: Tenant generation observed before ``data`` was computed.
            When given and the tenant has been invalidated since, nothing is
            stored.

    Returns:
        True if the entry was stored
    """
    with self._lock:
      if generation is not None:
        workspace_id = _tenant_of(key)
        if workspace_id is not None and self._generations.get(workspace_id, 0) != generation:
          return False
      self._entries[key] = CacheEntry(key=key, data=data, stored_at=self._clock())
      return True

  def invalidate_tenant(self, workspace_id: str) -> int:
    """Remove every entry scoped to a workspace and bump its generation.

    Returns:
        Number of entries removed
    """
    prefix = tenant_prefix(workspace_id)
    with self._lock:
      self._generations[workspace_id] = self._generations.get(workspace_id, 0) + 1
      stale = [key for key in self._entries if key.startswith(prefix)]
      for key in stale:
        del self._entries[key]
    return len(stale)

  def peek(self, key: str) -> Optional[CacheEntry]:
    """Return the raw entry regardless of age (diagnostics and tests)."""
    with self._lock:
      return self._entries.get(key)

  def clear(self) -> None:
    with self._lock:
      self._entries.clear()

  def __len__(self) -> int:
    with self._lock:
      return len(self._entries)
