import os
from fastapi import FastAPI
from opentelemetry import trace, metrics
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.psycopg2 import Psycopg2Instrumentor
from loguru import logger

# Tracking pixels and health checks would drown real traffic in traces
EXCLUDED_URLS = "/health,/metrics,/api/analytics/hit/.*"


def otlp_endpoint() -> str | None:
    return os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or None


def otlp_insecure() -> bool:
    return os.getenv("OTEL_EXPORTER_OTLP_INSECURE", "false").lower() == "true"


def build_resource() -> Resource:
    """Describe this service for every exported span, metric and log record."""
    return Resource.create(
        {
            "service.name": os.getenv("OTEL_SERVICE_NAME", "statichost-api"),
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }
    )


def setup_telemetry(app: FastAPI):
    """
    Initialize OpenTelemetry tracing and metrics when an OTLP endpoint is configured.

    Registers tracer and meter providers with OTLP gRPC exporters and instruments the
    FastAPI app, SQLAlchemy and psycopg2 once per process. Without an endpoint telemetry
    stays disabled; setup failures are logged but not raised.

    Parameters:
        app (FastAPI): Application to instrument. Health checks and analytics hits are excluded.
    """
    endpoint = otlp_endpoint()
    if not endpoint:
        logger.warning("No endpoint configured. Telemetry disabled.")
        return
    try:
        resource = build_resource()
        insecure = otlp_insecure()

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
        )
        trace.set_tracer_provider(tracer_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=endpoint, insecure=insecure)
        )
        metrics.set_meter_provider(
            MeterProvider(resource=resource, metric_readers=[metric_reader])
        )

        if not getattr(setup_telemetry, "_instrumented", False):
            FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
            SQLAlchemyInstrumentor().instrument(enable_commenter=True)  # type: ignore
            Psycopg2Instrumentor().instrument(  # type: ignore
                enable_commenter=True, skip_dep_check=True
            )
            setup_telemetry._instrumented = True  # type: ignore

        logger.info(f"Traces & metrics exported to {endpoint}")

    except Exception as e:
        logger.error(f"Traces & Metrics Setup Failed: {e}")
