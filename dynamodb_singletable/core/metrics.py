"""
Per-model, per-operation metrics for dispatched table operations.

Tracks request counts, errors, latency and consumed capacity. Completions may
arrive from several threads at once, so every update takes the lock.
"""

import logging
import threading
import time
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

READ_WRITE = {
    'delete': 'write',
    'get': 'read',
    'find': 'read',
    'put': 'write',
    'scan': 'read',
    'update': 'write',
    'batch_get': 'read',
    'batch_write': 'write',
    'transact_get': 'read',
    'transact_write': 'write',
}


def consumed_capacity(result: Dict[str, Any]) -> float:
    """Sum CapacityUnits across a response's ConsumedCapacity entries."""
    capacity = result.get('ConsumedCapacity')
    if not capacity:
        return 0.0
    if isinstance(capacity, dict):
        capacity = [capacity]
    return float(sum(entry.get('CapacityUnits', 0) or 0 for entry in capacity))


def item_count(result: Dict[str, Any]) -> int:
    if 'Items' in result:
        return len(result['Items'])
    if 'Responses' in result:
        responses = result['Responses']
        if isinstance(responses, dict):
            return sum(len(items) for items in responses.values())
        return len(responses)
    return 1 if result.get('Item') or result.get('Attributes') else 0


@dataclass
class OperationStats:
    """Aggregated statistics for one (model, operation) pair."""

    requests: int = 0
    errors: int = 0
    items: int = 0
    capacity: float = 0.0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        """Average latency in ms."""
        return self.total_ms / self.requests if self.requests > 0 else 0.0

    def record(self, latency_ms: float, capacity: float, items: int, error: bool) -> None:
        self.requests += 1
        self.errors += 1 if error else 0
        self.items += items
        self.capacity += capacity
        self.total_ms += latency_ms
        self.max_ms = max(self.max_ms, latency_ms)


class OperationMetrics:
    """Thread-safe metrics collaborator for the operation dispatcher."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Dict[Tuple[str, str], OperationStats] = defaultdict(OperationStats)

    def add(self, model: str, operation: str, result: Optional[Dict[str, Any]], params: Dict[str, Any], mark: float) -> None:
        """Record one completed operation.

        Args:
            model: Model name the operation ran for
            operation: Operation kind (e.g. "get")
            result: Store response, or ``{'Error': 1}`` for a failure
            params: The caller's operation parameters
            mark: ``time.monotonic()`` taken when dispatch started
        """
        result = result or {}
        latency_ms = (time.monotonic() - mark) * 1000
        error = bool(result.get('Error'))
        capacity = consumed_capacity(result)
        items = item_count(result)
        with self._lock:
            self._stats[(model, operation)].record(latency_ms, capacity, items, error)

        stats = params.get('stats')
        if isinstance(stats, dict):
            stats['count'] = stats.get('count', 0) + items
            stats['capacity'] = stats.get('capacity', 0.0) + capacity

    def get(self, model: str, operation: str) -> OperationStats:
        with self._lock:
            stats = self._stats.get((model, operation))
            return OperationStats(**asdict(stats)) if stats else OperationStats()

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Return totals keyed by model then operation, including read/write rollups."""
        with self._lock:
            items = [(key, OperationStats(**asdict(stats))) for key, stats in self._stats.items()]

        result: Dict[str, Dict[str, Any]] = {}
        for (model, operation), stats in items:
            entry = result.setdefault(model, {'read': 0, 'write': 0})
            entry[operation] = {**asdict(stats), 'avg_ms': stats.avg_ms}
            entry[READ_WRITE.get(operation, 'read')] += stats.requests
        return result

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
