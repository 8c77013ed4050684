"""
Tests for the snapshot TTL cache.
"""
import json

import pytest

from finbot.utils.smart_cache import SnapshotCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = SnapshotCache(ttl_seconds=60, clock=clock)
    cache.set('snapshot')

    clock.now += 59
    assert cache.get() == 'snapshot'
    assert cache.age() == 59

    clock.now += 1
    assert cache.get() is None
    assert cache.age() is None


def test_invalidate():
    cache = SnapshotCache(ttl_seconds=60, clock=FakeClock())
    cache.set('snapshot')
    cache.invalidate()
    assert cache.get() is None


@pytest.mark.asyncio
async def test_get_or_fetch_reads_through():
    clock = FakeClock()
    cache = SnapshotCache(ttl_seconds=60, clock=clock)
    calls = []

    async def fetch():
        calls.append(1)
        return f'snapshot-{len(calls)}'

    assert await cache.get_or_fetch(fetch) == ('snapshot-1', False)
    assert await cache.get_or_fetch(fetch) == ('snapshot-1', True)
    assert await cache.get_or_fetch(fetch, force_refresh=True) == ('snapshot-2', False)

    clock.now += 61
    assert await cache.get_or_fetch(fetch) == ('snapshot-3', False)
    assert len(calls) == 3


def test_stats():
    cache = SnapshotCache(ttl_seconds=60, clock=FakeClock())
    cache.get()
    cache.set('snapshot')
    cache.get()

    stats = cache.get_stats()
    assert stats['hits'] == 1
    assert stats['misses'] == 1
    assert stats['hit_rate'] == '50.0%'
    assert json.loads(cache.export_stats())['total_requests'] == 2
