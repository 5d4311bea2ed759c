"""Timing of clone, fetch, pull and merge steps."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional

SLOW_OPERATION_SECONDS = 30.0


@dataclass
class PerformanceMetrics:
    """Timing of one step."""
    operation: str
    duration: float
    success: bool = True
    context: Optional[Dict[str, Any]] = None


class PerformanceLogger:
    """Collects step timings for one engine instance."""

    def __init__(self, logger_name: str = 'coursesync.git_sync.performance'):
        self.logger = logging.getLogger(logger_name)
        self._metrics: List[PerformanceMetrics] = []

    @contextmanager
    def time_operation(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Time the enclosed block and record it.

        Args:
            operation: Step name, e.g. ``clone`` or ``merge``
            context: Extra values logged alongside the timing
            log_level: Level of the completion message
        """
        start_time = time.monotonic()
        success = True
        try:
            yield
        except Exception:
            success = False
            raise
        finally:
            duration = time.monotonic() - start_time
            self._metrics.append(PerformanceMetrics(operation, duration, success, context))

            status_icon = "✅" if success else "❌"
            context_str = ""
            if context:
                context_str = " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"
            self.logger.log(log_level, f"{status_icon} {operation} took {duration:.3f}s{context_str}")

            if duration > SLOW_OPERATION_SECONDS:
                self.logger.warning(f"⚠️ Slow git operation: {operation} took {duration:.1f}s")

    @property
    def metrics(self) -> List[PerformanceMetrics]:
        return list(self._metrics)

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Count, total and maximum duration per operation."""
        result: Dict[str, Dict[str, float]] = {}
        for metric in self._metrics:
            entry = result.setdefault(metric.operation, {"count": 0, "total": 0.0, "max": 0.0})
            entry["count"] += 1
            entry["total"] += metric.duration
            entry["max"] = max(entry["max"], metric.duration)
        return result
