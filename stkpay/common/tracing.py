"""OpenTelemetry setup for the checkout app.

Outbound Daraja calls are not auto-instrumented; request spans cover them.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

# Health checks and metric scrapes would drown real traffic in the trace backend.
EXCLUDED_URLS = "health,metrics"


def setup_tracing(service_name: str, endpoint: str) -> None:
    """Register a tracer provider exporting over OTLP HTTP to `endpoint`."""

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def current_trace_id() -> str:
    """Hex trace id of the active span, or "" when no span is recording."""

    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return ""
    return format(context.trace_id, "032x")
