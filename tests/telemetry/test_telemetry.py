"""Tests for meet_mcp.core.telemetry — OpenTelemetry initialization and tool spans."""

import httpx
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

import meet_mcp.core.telemetry as _telemetry_mod
from meet_mcp.core.telemetry import init_telemetry, tool_span

pytestmark = pytest.mark.unit


def _reset_otel_global_state():
    """Fully reset the OpenTelemetry global tracer provider state.

    The OTel SDK uses a ``Once`` guard that prevents ``set_tracer_provider``
    from being called more than once. For test isolation we need to reset both
    the guard and the cached provider reference.
    """
    trace._TRACER_PROVIDER_SET_ONCE = trace.Once()
    trace._TRACER_PROVIDER = None
    _telemetry_mod._tracer_provider_installed = False


@pytest.fixture(autouse=True)
def _clean_tracer_provider():
    """Reset the global tracer provider before and after each test."""
    _reset_otel_global_state()
    yield
    _reset_otel_global_state()


@pytest.fixture
def exporter():
    """Install an in-memory exporter as the global tracer provider."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    yield exporter
    provider.shutdown()


class TestNoopWhenEndpointNotSet:
    def test_returns_tracer_without_error(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
        tracer = init_telemetry("google-meet-mcp")
        with tracer.start_as_current_span("test-span") as span:
            assert span is not None

    def test_does_not_install_provider(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
        init_telemetry("google-meet-mcp")
        assert _telemetry_mod._tracer_provider_installed is False


class TestProviderWithEndpoint:
    def test_resource_carries_service_name(self, monkeypatch):
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

        init_telemetry("google-meet-mcp")

        provider = trace.get_tracer_provider()
        assert isinstance(provider, TracerProvider)
        assert dict(provider.resource.attributes)["service.name"] == "google-meet-mcp"
        provider.shutdown()

    def test_second_call_reuses_provider(self, monkeypatch):
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

        init_telemetry("google-meet-mcp")
        first = trace.get_tracer_provider()
        init_telemetry("google-meet-mcp")

        assert trace.get_tracer_provider() is first
        first.shutdown()


# ---------------------------------------------------------------------------
# tool_span
# ---------------------------------------------------------------------------


class TestToolSpan:
    def test_context_manager_sets_attributes(self, exporter):
        with tool_span("meet_v2_get_space", category="meet_space") as span:
            span.set_attribute("extra", "yes")

        (finished,) = exporter.get_finished_spans()
        assert finished.name == "meet_mcp.tool.meet_v2_get_space"
        assert finished.attributes["tool.name"] == "meet_v2_get_space"
        assert finished.attributes["tool.category"] == "meet_space"
        assert finished.attributes["extra"] == "yes"

    def test_span_is_current_inside_block(self, exporter):
        with tool_span("calendar_v3_list_events") as span:
            assert trace.get_current_span() is span
        assert trace.get_current_span() is not span

    def test_exception_marks_span_as_error(self, exporter):
        with pytest.raises(RuntimeError):
            with tool_span("calendar_v3_list_events"):
                raise RuntimeError("boom")

        (finished,) = exporter.get_finished_spans()
        assert finished.status.status_code is trace.StatusCode.ERROR
        assert finished.events[0].name == "exception"


class TestDispatcherSpans:
    async def test_failed_dispatch_records_error_kind(self, exporter, dispatcher):
        result = await dispatcher.dispatch("meet_v2_get_space", {"space_name": "spaces/gone"})

        assert result.ok is False
        (finished,) = exporter.get_finished_spans()
        assert finished.name == "meet_mcp.tool.meet_v2_get_space"
        assert finished.attributes["tool.error_kind"] == "NotFound"
        assert finished.status.status_code is trace.StatusCode.ERROR

    async def test_successful_dispatch(self, exporter, dispatcher, fake_google):
        fake_google.on(
            "GET", "/calendar/v3/users/me/calendarList", httpx.Response(200, json={})
        )

        result = await dispatcher.dispatch("calendar_v3_list_calendars", {})

        assert result.ok is True
        (finished,) = exporter.get_finished_spans()
        assert finished.attributes["tool.category"] == "calendar"
        assert "tool.error_kind" not in finished.attributes
