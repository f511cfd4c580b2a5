"""OpenTelemetry + Prometheus fallback wiring for the registry audit backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from registry_audit import config

logger = logging.getLogger("regaudit.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_analysis_counter: Any | None = None
_analysis_latency_hist: Any | None = None
_orphan_gauge_hist: Any | None = None
_action_counter: Any | None = None

_prom_enabled = False
_prom_analysis_counter: Any | None = None
_prom_analysis_latency_hist: Any | None = None
_prom_orphan_gauge: Any | None = None
_prom_action_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _analysis_counter, _analysis_latency_hist, _orphan_gauge_hist, _action_counter
    global _prom_enabled, _prom_analysis_counter, _prom_analysis_latency_hist
    global _prom_orphan_gauge, _prom_action_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (REGAUDIT_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "regaudit-backend"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "regaudit",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("regaudit.backend")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("regaudit.backend")

    _analysis_counter = meter.create_counter(
        "regaudit_analysis_passes_total",
        unit="1",
        description="Count of orphan analysis passes",
    )
    _analysis_latency_hist = meter.create_histogram(
        "regaudit_analysis_latency_ms",
        unit="ms",
        description="Latency of a full orphan analysis pass",
    )
    _orphan_gauge_hist = meter.create_histogram(
        "regaudit_orphans_detected",
        unit="1",
        description="Orphans reported by each analysis pass",
    )
    _action_counter = meter.create_counter(
        "regaudit_orphan_actions_total",
        unit="1",
        description="Review actions applied to orphaned feature records",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Gauge, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_analysis_counter = Counter(
                "regaudit_analysis_passes_total",
                "Count of orphan analysis passes",
                ["result"],
            )
            _prom_analysis_latency_hist = Histogram(
                "regaudit_analysis_latency_ms",
                "Latency of a full orphan analysis pass",
                ["result"],
            )
            _prom_orphan_gauge = Gauge(
                "regaudit_orphans_detected",
                "Orphans reported by the latest analysis pass",
            )
            _prom_action_counter = Counter(
                "regaudit_orphan_actions_total",
                "Review actions applied to orphaned feature records",
                ["action", "result"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    for provider in (_meter_provider, _trace_provider):
        try:
            if provider is not None:
                provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_analysis_pass(result: str, duration_ms: float, orphan_count: int) -> None:
    labels = {"result": result or "unknown"}
    if _enabled and _analysis_counter is not None:
        _analysis_counter.add(1, labels)
    if _enabled and _analysis_latency_hist is not None:
        _analysis_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _enabled and _orphan_gauge_hist is not None and result == "success":
        _orphan_gauge_hist.record(max(0, int(orphan_count)))
    if _prom_enabled and _prom_analysis_counter is not None:
        _prom_analysis_counter.labels(**labels).inc()
    if _prom_enabled and _prom_analysis_latency_hist is not None:
        _prom_analysis_latency_hist.labels(**labels).observe(max(0.0, float(duration_ms)))
    if _prom_enabled and _prom_orphan_gauge is not None and result == "success":
        _prom_orphan_gauge.set(max(0, int(orphan_count)))


def record_orphan_action(action: str, result: str, count: int = 1) -> None:
    safe_count = max(0, int(count))
    if safe_count == 0:
        return
    labels = {
        "action": action or "unknown",
        "result": result or "unknown",
    }
    if _enabled and _action_counter is not None:
        _action_counter.add(safe_count, labels)
    if _prom_enabled and _prom_action_counter is not None:
        _prom_action_counter.labels(**labels).inc(safe_count)
