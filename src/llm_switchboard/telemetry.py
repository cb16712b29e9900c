"""Telemetry helpers for tracing and metrics.

This module centralises OpenTelemetry initialisation so that the rest of the
codebase can focus on emitting spans and metrics without worrying about
configuration details. Until :func:`configure_telemetry` runs, the API hands
out no-op tracers and meters, which keeps library use and tests free of
exporters.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Final

from opentelemetry import metrics, trace
from opentelemetry.metrics import CallbackOptions, Observation
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.trace import Status, StatusCode

_logger = logging.getLogger(__name__)

_DEFAULT_SERVICE_NAME: Final[str] = "llm-switchboard"
_LOCK = threading.Lock()
_INITIALISED = False


def configure_telemetry(
    service_name: str | None = None,
    *,
    span_exporter: SpanExporter | None = None,
) -> bool:
    """Install SDK providers once per process. Returns ``False`` if already done.

    ``span_exporter`` overrides the OTLP or console exporter picked from the
    environment; tests pass an in-memory exporter here.
    """

    global _INITIALISED

    with _LOCK:
        if _INITIALISED:
            return False

        resource = Resource.create(
            {"service.name": service_name or os.getenv("OTEL_SERVICE_NAME", _DEFAULT_SERVICE_NAME)}
        )

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter or _build_span_exporter()))
        trace.set_tracer_provider(tracer_provider)

        meter_provider = MeterProvider(resource=resource, metric_readers=[PrometheusMetricReader()])
        metrics.set_meter_provider(meter_provider)

        _INITIALISED = True
        _logger.info("Telemetry providers configured", extra={"service_name": resource.attributes.get("service.name")})
        return True


def _build_span_exporter() -> SpanExporter:
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        return OTLPSpanExporter(endpoint=endpoint)
    return ConsoleSpanExporter()


def get_tracer(name: str | None = None) -> trace.Tracer:
    return trace.get_tracer(name or __name__)


def get_meter(name: str | None = None) -> metrics.Meter:
    return metrics.get_meter(name or __name__)


__all__ = [
    "CallbackOptions",
    "Observation",
    "configure_telemetry",
    "get_meter",
    "get_tracer",
    "Status",
    "StatusCode",
]
