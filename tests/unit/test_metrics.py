"""
Tests for operation metrics (core/metrics.py)
"""

import time
from concurrent.futures import ThreadPoolExecutor

from dynamodb_singletable.core.metrics import OperationMetrics, OperationStats, consumed_capacity, item_count


class TestHelpers:

    def test_consumed_capacity(self):
        assert consumed_capacity({}) == 0.0
        assert consumed_capacity({'ConsumedCapacity': {'CapacityUnits': 2}}) == 2.0
        assert consumed_capacity({'ConsumedCapacity': [{'CapacityUnits': 1}, {'CapacityUnits': 0.5}]}) == 1.5

    def test_item_count(self):
        assert item_count({'Items': [1, 2, 3]}) == 3
        assert item_count({'Responses': {'a': [1], 'b': [2, 3]}}) == 3
        assert item_count({'Responses': [{}, {}]}) == 2
        assert item_count({'Item': {'pk': 'a'}}) == 1
        assert item_count({}) == 0


class TestOperationStats:

    def test_average(self):
        stats = OperationStats()
        assert stats.avg_ms == 0.0

        stats.record(10.0, 1.0, 1, False)
        stats.record(30.0, 1.0, 0, True)

        assert stats.requests == 2
        assert stats.errors == 1
        assert stats.avg_ms == 20.0
        assert stats.max_ms == 30.0


class TestOperationMetrics:

    def test_add_success(self):
        metrics = OperationMetrics()
        metrics.add('User', 'get', {'Item': {'pk': 'a'}, 'ConsumedCapacity': {'CapacityUnits': 0.5}}, {}, time.monotonic())

        stats = metrics.get('User', 'get')
        assert stats.requests == 1
        assert stats.errors == 0
        assert stats.items == 1
        assert stats.capacity == 0.5
        assert stats.total_ms >= 0

    def test_add_failure(self):
        metrics = OperationMetrics()
        metrics.add('User', 'put', {'Error': 1}, {}, time.monotonic())

        assert metrics.get('User', 'put').errors == 1

    def test_stats_param_accumulates(self):
        metrics = OperationMetrics()
        stats = {}
        metrics.add('User', 'find', {'Items': [1, 2]}, {'stats': stats}, time.monotonic())
        metrics.add('User', 'find', {'Items': [3], 'ConsumedCapacity': {'CapacityUnits': 1}}, {'stats': stats}, time.monotonic())

        assert stats == {'count': 3, 'capacity': 1.0}

    def test_get_returns_copy(self):
        metrics = OperationMetrics()
        metrics.add('User', 'get', {}, {}, time.monotonic())

        metrics.get('User', 'get').requests = 100

        assert metrics.get('User', 'get').requests == 1
        assert metrics.get('Other', 'get') == OperationStats()

    def test_snapshot_rollups(self):
        metrics = OperationMetrics()
        mark = time.monotonic()
        metrics.add('User', 'get', {}, {}, mark)
        metrics.add('User', 'find', {}, {}, mark)
        metrics.add('User', 'put', {}, {}, mark)
        metrics.add('Account', 'batch_write', {}, {}, mark)

        snapshot = metrics.snapshot()

        assert snapshot['User']['read'] == 2
        assert snapshot['User']['write'] == 1
        assert snapshot['User']['get']['requests'] == 1
        assert 'avg_ms' in snapshot['User']['get']
        assert snapshot['Account'] == {
            'read': 0,
            'write': 1,
            'batch_write': snapshot['Account']['batch_write'],
        }

    def test_reset(self):
        metrics = OperationMetrics()
        metrics.add('User', 'get', {}, {}, time.monotonic())
        metrics.reset()

        assert metrics.snapshot() == {}

    def test_concurrent_adds(self):
        metrics = OperationMetrics()
        mark = time.monotonic()

        def add(_):
            metrics.add('User', 'get', {'Item': {'pk': 'a'}}, {}, mark)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(add, range(1000)))

        stats = metrics.get('User', 'get')
        assert stats.requests == 1000
        assert stats.items == 1000
