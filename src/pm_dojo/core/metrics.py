"""
Prometheus-style metrics for monitoring the content pipeline.

Provides counters and duration histograms for:
- LLM gateway calls (per provider and outcome)
- Intelligence extraction and question generation
- Sync and scheduler runs
"""

import itertools
import logging
import threading
import time
from collections import defaultdict
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Simple metrics collector with Prometheus-style output."""

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.histograms: Dict[str, List[float]] = defaultdict(list)
        self.start_times: Dict[str, float] = {}  # timer id -> start
        self._timer_ids = itertools.count(1)
        self._lock = threading.Lock()

    def increment(self, metric_name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        """Increment a counter metric."""
        key = self._make_key(metric_name, labels)
        with self._lock:
            self.counters[key] += value
        logger.debug(f"[METRIC] {key} += {value}")

    def observe(self, metric_name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record a histogram observation."""
        key = self._make_key(metric_name, labels)
        with self._lock:
            self.histograms[key].append(value)

    def start_timer(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Start a timer for duration measurement and return its id."""
        key = self._make_key(metric_name, labels)
        with self._lock:
            timer_id = f"{key}#{next(self._timer_ids)}"
            self.start_times[timer_id] = time.time()
        return timer_id

    def stop_timer(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None,
        timer_id: Optional[str] = None,
    ) -> Optional[float]:
        """
        Stop a timer and record duration.

        Without timer_id the most recently started timer for the metric and
        labels is stopped.
        """
        key = self._make_key(metric_name, labels)
        with self._lock:
            if timer_id is None:
                running = [t for t in self.start_times if t.rpartition("#")[0] == key]
                timer_id = running[-1] if running else None
            started = self.start_times.pop(timer_id, None) if timer_id else None
        if started is None:
            return None
        duration = time.time() - started
        self.observe(f"{metric_name}_duration_seconds", duration, labels)
        return duration

    def get_counter(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self.counters.get(self._make_key(metric_name, labels), 0)

    def reset(self) -> None:
        with self._lock:
            self.counters.clear()
            self.histograms.clear()
            self.start_times.clear()

    def _make_key(self, metric_name: str, labels: Optional[Dict[str, str]]) -> str:
        if not labels:
            return metric_name
        label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
        return f"{metric_name}{{{label_str}}}"

    def format_prometheus(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines = []
        with self._lock:
            for key, value in sorted(self.counters.items()):
                lines.append(f"pm_dojo_{key} {value}")
            for key, values in sorted(self.histograms.items()):
                if not values:
                    continue
                name, _, labels = key.partition("{")
                suffix = "{" + labels if labels else ""
                lines.append(f"pm_dojo_{name}_count{suffix} {len(values)}")
                lines.append(f"pm_dojo_{name}_sum{suffix} {sum(values):.3f}")
        return "\n".join(lines) + "\n"


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    return _metrics


def increment(metric_name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
    _metrics.increment(metric_name, value, labels)


def start_timer(metric_name: str, labels: Optional[Dict[str, str]] = None) -> str:
    return _metrics.start_timer(metric_name, labels)


def stop_timer(
    metric_name: str, labels: Optional[Dict[str, str]] = None, timer_id: Optional[str] = None
) -> Optional[float]:
    return _metrics.stop_timer(metric_name, labels, timer_id)
