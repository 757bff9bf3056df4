"""Tests for OpenTelemetry tracing helpers."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from opentelemetry import trace

from sandgate.utils import telemetry
from sandgate.utils.telemetry import ATTR_CONFIDENCE, ATTR_FILE, configure_telemetry, get_tracer


class TestGetTracer:
    def test_returns_tracer(self) -> None:
        assert isinstance(get_tracer("sandgate.tests"), trace.Tracer)

    def test_default_name(self) -> None:
        assert isinstance(get_tracer(), trace.Tracer)

    def test_spans_accept_attributes_without_sdk(self) -> None:
        with get_tracer("sandgate.noop").start_as_current_span("sandgate.execute") as span:
            span.set_attribute(ATTR_FILE, "src/app.py")
            span.set_attribute(ATTR_CONFIDENCE, 80)


class TestConfigureTelemetry:
    def test_raises_without_sdk(self) -> None:
        with patch.dict("sys.modules", {"opentelemetry.sdk.resources": None}):
            with pytest.raises(ImportError, match="sandgate\\[otel\\]"):
                configure_telemetry()

    def test_otlp_raises_without_exporter(self) -> None:
        pytest.importorskip("opentelemetry.sdk.trace")
        with patch.dict("sys.modules", {"opentelemetry.exporter.otlp.proto.grpc.trace_exporter": None}):
            with pytest.raises(ImportError, match="opentelemetry-exporter-otlp"):
                configure_telemetry(otlp_endpoint="http://localhost:4317")


class TestAttributeKeys:
    def test_keys_are_namespaced(self) -> None:
        keys = [value for name, value in vars(telemetry).items() if name.startswith("ATTR_")]
        assert keys
        assert all(key.startswith("sandgate.") for key in keys)
        assert len(keys) == len(set(keys))
