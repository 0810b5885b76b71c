"""Unit tests for the result cache: TTL expiry, key construction, tenant invalidation."""

import threading
from datetime import datetime

import pytest

from analytics_server.lib.cache import MISS, ResultCache, build_key


class TestBuildKey:
  def test_parameter_order_does_not_matter(self):
    assert build_key('ws_1', 'top-events', limit=10, range='7d') == build_key(
      'ws_1', 'top-events', range='7d', limit=10
    )

  def test_different_limits_never_collide(self):
    assert build_key('ws_1', 'top-events', range='7d', limit=5) != build_key(
      'ws_1', 'top-events', range='7d', limit=10
    )

  def test_key_encodes_tenant_kind_and_params(self):
    key = build_key('ws_1', 'volume', start=datetime(2024, 1, 1), steps=['a', 'b'])

    assert key == 'workspace:ws_1|volume|start=2024-01-01T00:00:00|steps=a,b'

  def test_workspace_is_required(self):
    with pytest.raises(ValueError):
      build_key('', 'stats')


class TestResultCache:
  def test_get_returns_miss_for_unknown_key(self):
    assert ResultCache().get('missing') is MISS

  def test_hit_within_ttl(self, fake_clock):
    cache = ResultCache(ttl_seconds=30, clock=fake_clock)
    cache.put('k', {'total_events': 3})

    fake_clock.advance(29.9)

    assert cache.get('k') == {'total_events': 3}

  def test_expired_at_exactly_ttl(self, fake_clock):
    """A hit requires age strictly below the TTL."""
    cache = ResultCache(ttl_seconds=30, clock=fake_clock)
    cache.put('k', 'data')

    fake_clock.advance(30)

    assert cache.get('k') is MISS
    assert len(cache) == 0, 'Expired entry should be dropped on read'

  def test_falsy_values_are_hits(self, fake_clock):
    cache = ResultCache(clock=fake_clock)
    cache.put('empty', [])
    cache.put('zero', 0)

    assert cache.get('empty') == []
    assert cache.get('zero') == 0

  def test_put_overwrites_and_restamps(self, fake_clock):
    cache = ResultCache(ttl_seconds=30, clock=fake_clock)
    cache.put('k', 'old')
    fake_clock.advance(20)
    cache.put('k', 'new')
    fake_clock.advance(20)

    assert cache.get('k') == 'new'

  def test_invalidate_tenant_only_touches_that_tenant(self):
    cache = ResultCache()
    cache.put(build_key('ws_1', 'stats', range='7d'), 1)
    cache.put(build_key('ws_1', 'volume', range='30d'), 2)
    cache.put(build_key('ws_10', 'stats', range='7d'), 3)
    cache.put(build_key('ws_2', 'stats', range='7d'), 4)

    removed = cache.invalidate_tenant('ws_1')

    assert removed == 2
    assert cache.get(build_key('ws_1', 'stats', range='7d')) is MISS
    assert cache.get(build_key('ws_10', 'stats', range='7d')) == 3, 'Prefix must not match ws_10'
    assert cache.get(build_key('ws_2', 'stats', range='7d')) == 4

  def test_put_with_outdated_generation_is_dropped(self):
    cache = ResultCache()
    key = build_key('ws_1', 'stats', range='7d')
    generation = cache.generation('ws_1')

    cache.invalidate_tenant('ws_1')
    stored = cache.put(key, {'total_events': 0}, generation=generation)

    assert stored is False
    assert cache.get(key) is MISS

  def test_put_with_current_generation_is_stored(self):
    cache = ResultCache()
    cache.invalidate_tenant('ws_2')
    key = build_key('ws_1', 'stats', range='7d')
    generation = cache.generation('ws_1')

    assert cache.put(key, 1, generation=generation) is True
    assert cache.get(key) == 1

  def test_clear(self):
    cache = ResultCache()
    cache.put('a', 1)
    cache.put('b', 2)

    cache.clear()

    assert len(cache) == 0

  def test_concurrent_put_and_invalidate(self):
    cache = ResultCache()
    errors = []

    def writer(n):
      try:
        for i in range(200):
          cache.put(build_key(f'ws_{n % 2}', 'stats', i=i), i)
          cache.get(build_key(f'ws_{n % 2}', 'stats', i=i))
      except Exception as e:  # noqa: BLE001
        errors.append(e)

    def invalidator():
      try:
        for _ in range(200):
          cache.invalidate_tenant('ws_0')
      except Exception as e:  # noqa: BLE001
        errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads.append(threading.Thread(target=invalidator))
    for t in threads:
      t.start()
    for t in threads:
      t.join()

    assert errors == []
    cache.invalidate_tenant('ws_0')
    assert all(not entry_key.startswith('workspace:ws_0|') for entry_key in cache._entries)
