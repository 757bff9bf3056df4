"""OpenTelemetry tracing helpers for sandgate.

Thin wrapper around the OpenTelemetry API so evaluation, gating, and
deployment code can call ``get_tracer()`` whether or not the SDK is
installed.  Without a configured SDK the API hands back no-op tracers.

Usage::

    from sandgate.utils.telemetry import ATTR_FILE, get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("sandgate.execute") as span:
        span.set_attribute(ATTR_FILE, "src/app.py")

Call :func:`configure_telemetry` once at startup to export spans (requires
the ``otel`` extra: ``pip install sandgate[otel]``).
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Semantic attribute keys used throughout sandgate instrumentation
# ---------------------------------------------------------------------------

ATTR_FILE = "sandgate.file"
ATTR_LANGUAGE = "sandgate.language"
ATTR_CONFIDENCE = "sandgate.confidence"
ATTR_ACTION = "sandgate.gate.action"
ATTR_ALLOWED = "sandgate.gate.allowed"
ATTR_CAPPED = "sandgate.gate.capped_by_security"
ATTR_FORCE = "sandgate.deploy.force"
ATTR_REASON_CODE = "sandgate.reason_code"
ATTR_SENSITIVE = "sandgate.security.sensitive"
ATTR_MALICIOUS = "sandgate.security.malicious"
ATTR_TESTS_PASSED = "sandgate.tests.passed"
ATTR_TESTS_FAILED = "sandgate.tests.failed"

_INSTRUMENTATION_NAME = "sandgate"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name* (no-op without an SDK)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "sandgate",
    export_to_console: bool = False,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``sandgate[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    export_to_console:
        If ``True``, export spans as JSON to stdout.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install sandgate[otel]"
        )
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if export_to_console:
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # pyright: ignore[reportMissingImports]

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    trace.set_tracer_provider(provider)


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install sandgate[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
