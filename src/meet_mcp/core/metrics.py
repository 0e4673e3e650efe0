"""OpenTelemetry metrics instruments for tool calls and token refreshes.

Instruments are created lazily from the global MeterProvider, so recording
before ``init_metrics`` is a silent no-op.

Instruments
-----------
  meet_mcp.tool.calls          Counter   (labels: tool, outcome, error_kind)
      One increment per dispatched tool call.

  meet_mcp.tool.duration_ms    Histogram (labels: tool, outcome)
      End-to-end dispatch duration in milliseconds.

  meet_mcp.auth.refreshes      Counter   (label: outcome)
      OAuth refresh-token exchanges, by outcome
      (success / revoked / unavailable / malformed).
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "meet_mcp"


def init_metrics(service_name: str) -> metrics.Meter:
    """Initialize OpenTelemetry metrics.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a MeterProvider with a
    periodic OTLP gRPC exporter.  Otherwise the no-op provider is used.
    """
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint), export_interval_millis=15_000
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider."""
    return metrics.get_meter(_METER_NAME)


class ToolMetrics:
    """Lazily-created instruments shared by the dispatcher and auth manager."""

    def __init__(self) -> None:
        self.__calls: metrics.Counter | None = None
        self.__duration: metrics.Histogram | None = None
        self.__refreshes: metrics.Counter | None = None

    @property
    def _calls(self) -> metrics.Counter:
        if self.__calls is None:
            self.__calls = get_meter().create_counter(
                name="meet_mcp.tool.calls",
                description="Total dispatched tool calls",
                unit="calls",
            )
        return self.__calls

    @property
    def _duration(self) -> metrics.Histogram:
        if self.__duration is None:
            self.__duration = get_meter().create_histogram(
                name="meet_mcp.tool.duration_ms",
                description="End-to-end tool dispatch duration in milliseconds",
                unit="ms",
            )
        return self.__duration

    @property
    def _refreshes(self) -> metrics.Counter:
        if self.__refreshes is None:
            self.__refreshes = get_meter().create_counter(
                name="meet_mcp.auth.refreshes",
                description="OAuth refresh-token exchanges by outcome",
                unit="refreshes",
            )
        return self.__refreshes

    def record_tool_call(
        self,
        tool_name: str,
        *,
        outcome: str,
        duration_ms: float,
        error_kind: str | None = None,
    ) -> None:
        attrs = {"tool": tool_name, "outcome": outcome}
        self._duration.record(duration_ms, attrs)
        self._calls.add(1, {**attrs, "error_kind": error_kind or "none"})

    def record_refresh(self, outcome: str) -> None:
        self._refreshes.add(1, {"outcome": outcome})
