"""
Defines and manages Prometheus metrics for the extraction engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import psutil
from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from docquarry.config.config import MonitoringConfig

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# The wrappers are defined before any metric creation so that the module-level
# `_create_metrics()` call can be repeated (test reloads, several routers in one
# process) without duplicate registration errors.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    """Create (or reuse) every collector used by the extraction engine."""
    return {
        "extractions_total": Counter(
            "docquarry_extractions_total",
            "Extraction attempts by content type and outcome",
            ["content_type", "outcome"],
        ),
        "extraction_failures_total": Counter(
            "docquarry_extraction_failures_total",
            "Failed extractions by error kind",
            ["kind"],
        ),
        "extraction_duration_seconds": Histogram(
            "docquarry_extraction_duration_seconds",
            "Wall-clock time of one extraction attempt",
            ["content_type"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
        ),
        "extracted_bytes_total": Counter(
            "docquarry_extracted_bytes_total",
            "Input bytes handed to extractors",
            ["content_type"],
        ),
        "extractions_active": Gauge(
            "docquarry_extractions_active",
            "Extractions currently holding a queue slot",
        ),
        "extractions_queued": Gauge(
            "docquarry_extractions_queued",
            "Extractions waiting for a queue slot",
        ),
        "process_memory_bytes": Gauge(
            "docquarry_process_memory_bytes",
            "Resident set size of the extraction process",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


class MetricsManager:
    """Manages the lifecycle of metrics collection and exporting."""

    def __init__(self, config: MonitoringConfig) -> None:
        self.config = config
        self._started = False

    def start(self) -> None:
        """Starts the Prometheus exporter when a port is configured."""
        if self.config.prometheus_port and not self._started:
            start_http_server(self.config.prometheus_port)
            self._started = True

    def update_system_metrics(self) -> None:
        """Refresh the process memory gauge."""
        METRICS["process_memory_bytes"].set(psutil.Process().memory_info().rss)

    def get_current_metrics(self) -> Dict[str, Any]:
        """Get current process resource usage as a dictionary."""
        process = psutil.Process()
        return {
            "rss_bytes": process.memory_info().rss,
            "cpu_percent": process.cpu_percent(interval=None),
            "threads": process.num_threads(),
        }

