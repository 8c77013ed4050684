"""
Tests for the bounded in-memory repository.
"""
from types import SimpleNamespace

import pytest

from finbot.services.repository import InMemoryRepository


def record(record_id, kind='a'):
    return SimpleNamespace(id=record_id, kind=kind)


def test_append_keeps_newest_first():
    repo = InMemoryRepository(retention=5)
    for i in range(3):
        repo.append(record(f'r{i}'))
    assert [item.id for item in repo.list()] == ['r2', 'r1', 'r0']


def test_retention_evicts_oldest():
    repo = InMemoryRepository(retention=2)
    for i in range(4):
        repo.append(record(f'r{i}'))
    assert len(repo) == 2
    assert repo.keys() == ['r3', 'r2']
    assert repo.find('r0') is None


def test_extend_preserves_batch_order_at_front():
    repo = InMemoryRepository(retention=10)
    repo.append(record('old'))
    repo.extend([record('new1'), record('new2')])
    assert repo.keys() == ['new1', 'new2', 'old']


def test_list_filters_and_limits():
    repo = InMemoryRepository(retention=10)
    for i in range(6):
        repo.append(record(f'r{i}', kind='even' if i % 2 == 0 else 'odd'))

    evens = repo.list(predicate=lambda item: item.kind == 'even')
    assert [item.id for item in evens] == ['r4', 'r2', 'r0']
    assert [item.id for item in repo.list(limit=2)] == ['r5', 'r4']


def test_find_with_custom_key():
    repo = InMemoryRepository(retention=3, key=lambda item: item.kind)
    repo.append(record('x', kind='alpha'))
    assert repo.find('alpha').id == 'x'
    assert repo.contains('alpha')
    assert not repo.contains('beta')


def test_retention_must_be_positive():
    with pytest.raises(ValueError):
        InMemoryRepository(retention=0)
