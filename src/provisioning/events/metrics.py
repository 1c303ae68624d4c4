"""Prometheus metrics for provisioning runs.

Metrics Defined:
- provision_runs_total: Counter of finished runs, labelled by result
- provision_step_failures_total: Counter of failures, labelled by step
- provision_tools_installed_total: Counter of installed sub-tools
- provision_cleanup_warnings_total: Counter of failed workspace removals
- provision_run_duration_seconds: Histogram of run duration

Provisioning runs are short-lived CLI processes, so metrics are pushed
to a Prometheus push gateway at the end of a run rather than scraped.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    push_to_gateway,
)

from src.provisioning.events.emitter import EventEmitter
from src.provisioning.events.models import EventType, ProvisionEvent

logger = logging.getLogger(__name__)

DEFAULT_DURATION_BUCKETS = (
    1.0,
    5.0,
    15.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1800.0,
    3600.0,
)

PUSH_GATEWAY_JOB = "tool-provisioner"


class ProvisionMetrics:
    """Container for provisioning Prometheus metrics.

    Each instance owns its registry so that repeated construction (one
    per CLI run, or per test) never collides with existing collectors.

    Attributes:
        registry: The Prometheus registry for these metrics.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.runs_total = Counter(
            "provision_runs_total",
            "Total number of provisioning runs",
            labelnames=["source", "result"],
            registry=self.registry,
        )
        self.step_failures_total = Counter(
            "provision_step_failures_total",
            "Total number of failed provisioning steps",
            labelnames=["source", "step"],
            registry=self.registry,
        )
        self.tools_installed_total = Counter(
            "provision_tools_installed_total",
            "Total number of sub-tools installed",
            labelnames=["source"],
            registry=self.registry,
        )
        self.cleanup_warnings_total = Counter(
            "provision_cleanup_warnings_total",
            "Total number of workspaces that could not be removed",
            labelnames=["source"],
            registry=self.registry,
        )
        self.run_duration_seconds = Histogram(
            "provision_run_duration_seconds",
            "Time spent in provisioning runs in seconds",
            labelnames=["source"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_run(self, source: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.runs_total.labels(source=source, result=result).inc()

    def record_step_failure(self, source: str, step: str) -> None:
        self.step_failures_total.labels(source=source, step=step).inc()

    def record_tool_installed(self, source: str) -> None:
        self.tools_installed_total.labels(source=source).inc()

    def record_cleanup_warning(self, source: str) -> None:
        self.cleanup_warnings_total.labels(source=source).inc()

    def record_duration(self, source: str, duration_seconds: float) -> None:
        self.run_duration_seconds.labels(source=source).observe(duration_seconds)

    def push(self, gateway_url: str) -> None:
        """Push collected metrics to a Prometheus push gateway.

        Failures are logged and swallowed; metrics never fail a run.
        """
        try:
            push_to_gateway(gateway_url, job=PUSH_GATEWAY_JOB, registry=self.registry)
            logger.debug("Metrics pushed to gateway %s", gateway_url)
        except Exception as exc:
            logger.warning("Failed to push metrics: %s", exc)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates ProvisionMetrics.

    - STEP_COMPLETED (install): increments tools installed
    - ERROR: records the failing step and a failed run
    - COMPLETION: records a successful run and its duration
    - CLEANUP_WARNING: increments cleanup warnings
    """

    def __init__(self, metrics: Optional[ProvisionMetrics] = None):
        self._metrics = metrics or ProvisionMetrics()

    @property
    def metrics(self) -> ProvisionMetrics:
        return self._metrics

    async def emit(self, event: ProvisionEvent) -> None:
        source = event.source_url
        try:
            if event.event_type == EventType.STEP_COMPLETED:
                if event.details.get("step") == "install":
                    self._metrics.record_tool_installed(source)
            elif event.event_type == EventType.ERROR:
                self._metrics.record_step_failure(
                    source, event.details.get("step", "unknown")
                )
                self._metrics.record_run(source, success=False)
            elif event.event_type == EventType.COMPLETION:
                self._metrics.record_run(source, success=True)
                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.record_duration(source, float(duration))
            elif event.event_type == EventType.CLEANUP_WARNING:
                self._metrics.record_cleanup_warning(source)
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
            )
