"""OpenTelemetry spans around reconciles, realization checks and periodic tasks."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

from . import __version__
from .utils.context import get_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "nsx-operator"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_provider: TracerProvider | None = None
_tracer: Tracer | None = None


def initialize_tracing(environ: Mapping[str, str] | None = None) -> bool:
    """Install an OTLP-exporting tracer provider.

    Controlled by ``OTEL_TRACES_ENABLED``, ``OTEL_SERVICE_NAME`` and
    ``OTEL_EXPORTER_OTLP_ENDPOINT``. Returns whether tracing is active.
    """
    global _provider, _tracer

    env = os.environ if environ is None else environ
    if env.get("OTEL_TRACES_ENABLED", "true").lower() == "false":
        logger.info("Tracing disabled")
        return False
    if _tracer is not None:
        return True

    service_name = env.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME)
    endpoint = env.get("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT)
    try:
        provider = TracerProvider(
            resource=Resource.create({"service.name": service_name, "service.version": __version__})
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
    except Exception as e:
        logger.warning(f"Failed to initialize tracing: {e}")
        return False

    _provider = provider
    _tracer = trace.get_tracer(service_name)
    logger.info(f"Exporting traces to {endpoint}")
    return True


def shutdown_tracing() -> None:
    """Flush pending spans and drop the tracer."""
    global _provider, _tracer

    if _provider is not None:
        _provider.shutdown()
    _provider = None
    _tracer = None


@contextmanager
def trace_span(
    name: str,
    kind: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Run the block inside a span, or yield None when tracing is off.

    Exceptions escaping the block are recorded on the span and mark it as
    failed before propagating.
    """
    if _tracer is None:
        yield None
        return

    attrs = {k: v for k, v in (attributes or {}).items() if v is not None}
    if kind:
        attrs["nsx.resource_kind"] = kind
    corr_id = get_correlation_id()
    if corr_id:
        attrs["nsx.correlation_id"] = corr_id

    with _tracer.start_as_current_span(
        name, attributes=attrs, record_exception=True, set_status_on_exception=True
    ) as span:
        yield span
