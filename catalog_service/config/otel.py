import atexit
import logging

from opentelemetry import trace, propagate
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor

from catalog_service.core.config import settings

logger = logging.getLogger(__name__)

_TRACER_PROVIDER = None


def _grpc_endpoint(endpoint: str) -> str:
    # gRPC 엔드포인트는 'host:port' 형식
    for scheme in ("http://", "https://"):
        if endpoint.startswith(scheme):
            return endpoint[len(scheme):]
    return endpoint


def setup_telemetry():
    """TracerProvider + OTLP exporter + pymongo 계측. OTEL_ENABLED 일 때만 동작."""
    global _TRACER_PROVIDER

    if not settings.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled, using no-op tracer.")
        return None
    if _TRACER_PROVIDER is not None:
        return _TRACER_PROVIDER

    try:
        resource = Resource.create({
            "service.name": settings.OTEL_SERVICE_NAME,
        })
        tracer_provider = TracerProvider(resource=resource)
        exporter = OTLPSpanExporter(endpoint=_grpc_endpoint(settings.OTEL_EXPORTER_OTLP_ENDPOINT), insecure=True)
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(tracer_provider)
        propagate.set_global_textmap(TraceContextTextMapPropagator())

        PymongoInstrumentor().instrument()
        logger.info("PymongoInstrumentor applied.")

        atexit.register(tracer_provider.shutdown)
        _TRACER_PROVIDER = tracer_provider
        logger.info("OpenTelemetry setup completed.",
                    extra={"service_name": settings.OTEL_SERVICE_NAME, "endpoint": settings.OTEL_EXPORTER_OTLP_ENDPOINT})
        return tracer_provider
    except Exception as e:
        logger.error("Failed to setup OpenTelemetry.", extra={"error": str(e)}, exc_info=True)
        raise


def instrument_fastapi_app(app):
    """FastAPI 앱을 OpenTelemetry로 계측합니다."""
    if _TRACER_PROVIDER is None:
        return
    FastAPIInstrumentor.instrument_app(app, tracer_provider=_TRACER_PROVIDER)
    logger.info("FastAPI application instrumented by OpenTelemetry.")
