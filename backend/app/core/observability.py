"""
OpenTelemetry Observability Module.
Provides distributed tracing for the lifecycle engine.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

logger = logging.getLogger(__name__)


def setup_tracing(app=None, export_to_console: bool = False):
    """Initializes OpenTelemetry tracing."""
    provider = TracerProvider()
    if export_to_console:
        # Console export is for local debugging; production wires an OTLP exporter here
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    if app:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("OpenTelemetry FastAPI instrumentation enabled.")


def get_tracer(name: str):
    """Returns a tracer instance."""
    return trace.get_tracer(name)
