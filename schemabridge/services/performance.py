"""Timing of compatibility-layer operations."""

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class OperationTiming:
    """One finished operation."""
    operation: str
    duration_ms: float
    success: bool


class CompatibilityPerformanceMonitor:
    """
    Records how long compatibility operations take and whether they succeed.

    Keeps the last `max_operations` finished operations. The success rate
    feeds the decision on whether the compatibility layer can be turned off.
    """

    def __init__(self, max_operations: int = 1000):
        self.max_operations = max_operations
        self._operations: Deque[OperationTiming] = deque(maxlen=max_operations)
        self._pending: Dict[str, tuple] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def start_timing(self, operation: str) -> str:
        """Start timing an operation; returns the id to pass to `end_timing`."""
        timing_id = f"{operation}-{next(self._ids)}"
        with self._lock:
            self._pending[timing_id] = (operation, time.perf_counter())
        return timing_id

    def end_timing(self, timing_id: str, success: bool = True) -> Optional[float]:
        """
        Finish timing an operation.

        Returns:
            Duration in milliseconds, or None for an unknown timing id
        """
        with self._lock:
            pending = self._pending.pop(timing_id, None)
            if pending is None:
                return None
            operation, started = pending
            duration_ms = (time.perf_counter() - started) * 1000
            self._operations.append(OperationTiming(operation, duration_ms, success))

        if not success:
            logger.warning(f"Compatibility operation {operation} failed after {duration_ms:.1f}ms")
        return duration_ms

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            operations = list(self._operations)

        breakdown: Dict[str, Dict[str, Any]] = {}
        for name in sorted({op.operation for op in operations}):
            matching = [op for op in operations if op.operation == name]
            breakdown[name] = {
                "count": len(matching),
                "averageDuration": sum(op.duration_ms for op in matching) / len(matching),
                "successRate": sum(1 for op in matching if op.success) / len(matching),
            }

        total = len(operations)
        return {
            "totalOperations": total,
            "averageDuration": sum(op.duration_ms for op in operations) / total if total else 0.0,
            "successRate": sum(1 for op in operations if op.success) / total if total else 1.0,
            "operationBreakdown": breakdown,
        }

    def success_rate(self) -> float:
        return self.get_statistics()["successRate"]

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._pending.clear()
