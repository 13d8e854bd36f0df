"""OpenTelemetry provider setup for traces, metrics and logs.

``configure_observability()`` runs once from ``main.py`` before logging is
configured. When ``OTLP_ENDPOINT`` is set it installs a TracerProvider, a
MeterProvider and a LoggerProvider, each exporting over OTLP gRPC, and
bridges stdlib logging into the LoggerProvider. Without it nothing is
installed and the OTel API stays no-op.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

METRIC_EXPORT_INTERVAL_MS = 15_000

_telemetry_enabled: bool = False


def is_telemetry_enabled() -> bool:
    """Whether SDK providers were installed by ``configure_observability``."""
    return _telemetry_enabled


def configure_observability() -> bool:
    """Install OTLP providers if ``OTLP_ENDPOINT`` is set. Idempotent."""
    global _telemetry_enabled  # noqa: PLW0603

    if _telemetry_enabled:
        return True

    # OTLP_ENDPOINT and OTEL_SERVICE_NAME may live in .env
    load_dotenv()
    endpoint = os.getenv("OTLP_ENDPOINT")
    if not endpoint:
        return False

    _configure_otlp(endpoint)
    _telemetry_enabled = True
    return True


def _configure_otlp(endpoint: str) -> None:
    from opentelemetry import metrics, trace
    from opentelemetry._logs import set_logger_provider
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import (
        OTLPLogExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
        OTLPMetricExporter,
    )
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
    from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    insecure = endpoint.startswith("http://")
    service_name = os.getenv("OTEL_SERVICE_NAME", "habit-streaks-api")
    resource = Resource.create({SERVICE_NAME: service_name})

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=insecure),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
    )
    metrics.set_meter_provider(
        MeterProvider(resource=resource, metric_readers=[reader])
    )

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint, insecure=insecure))
    )
    set_logger_provider(logger_provider)
    # configure_logging() keeps this handler when it resets the root logger
    logging.getLogger().addHandler(
        LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
    )

    logger.info(
        "telemetry.otlp.configured",
        extra={"endpoint": endpoint, "service": service_name},
    )
