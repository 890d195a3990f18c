#!/usr/bin/env python3
"""
Tracing for the newsletter and alert jobs.

Each CLI job is a short-lived process, so spans are batched in-process and
flushed at exit. They leave the process only when an Azure Monitor
connection string is configured and the exporter package is installed.

Environment variables:
  - APPLICATIONINSIGHTS_CONNECTION_STRING or AZURE_MONITOR_CONNECTION_STRING
  - OTEL_SERVICE_NAME (default: kingdom-report)
  - OTEL_ENVIRONMENT (maps to deployment.environment)
  - DISABLE_TELEMETRY=true to skip setup entirely

Pipeline steps are wrapped with ``@trace_span``; steps that learn their
outcome late (article counts, delivery totals, channel results) attach it
with ``add_span_attributes``.
"""

from __future__ import annotations

import os
import atexit
import logging
import threading
import functools
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Mapping, Optional
import inspect

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor

try:
    # Optional extra: pip install kingdom-report[azure]
    from azure.monitor.opentelemetry.exporter import AzureMonitorTraceExporter  # type: ignore
    _EXPORTER_IMPORT_ERROR: Optional[str] = None
except ImportError as _imp_err:
    AzureMonitorTraceExporter = None  # type: ignore
    _EXPORTER_IMPORT_ERROR = repr(_imp_err)

DEFAULT_SERVICE_NAME = "kingdom-report"

_setup_lock = threading.Lock()
_provider: Optional[TracerProvider] = None

_logger = logging.getLogger("KingdomReport.telemetry")


def _telemetry_disabled(env: Mapping[str, str]) -> bool:
    return env.get("DISABLE_TELEMETRY", "false").strip().lower() in ("1", "true", "yes")


def _resource(service: str, env: Mapping[str, str]) -> Resource:
    attrs: Dict[str, Any] = {"service.name": service, "service.namespace": "kingdom-report"}
    deployment = env.get("OTEL_ENVIRONMENT")
    if deployment:
        attrs["deployment.environment"] = deployment
    return Resource.create(attrs)


def _attach_exporter(provider: TracerProvider, service: str, env: Mapping[str, str]) -> None:
    conn = env.get("APPLICATIONINSIGHTS_CONNECTION_STRING") or env.get("AZURE_MONITOR_CONNECTION_STRING")
    if not conn:
        _logger.debug("No monitor connection string; spans for %s stay in-process", service)
        return
    if AzureMonitorTraceExporter is None:
        _logger.warning("Connection string set but azure-monitor-opentelemetry-exporter is missing: %s", _EXPORTER_IMPORT_ERROR)
        return
    try:
        provider.add_span_processor(BatchSpanProcessor(AzureMonitorTraceExporter.from_connection_string(conn)))
    except ValueError as e:
        _logger.warning("Invalid monitor connection string (%s); spans will not be exported", e)
        return
    _logger.info("Exporting spans for %s to Azure Monitor", service)


def init_telemetry(service_name: Optional[str] = None) -> None:
    """Install the tracer provider and client/log instrumentation once per process."""
    global _provider
    env = os.environ
    if _telemetry_disabled(env) or _provider is not None:
        return
    with _setup_lock:
        if _provider is not None:
            return
        service = service_name or env.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME)

        current = trace.get_tracer_provider()
        provider = current if isinstance(current, TracerProvider) else TracerProvider(resource=_resource(service, env))
        _attach_exporter(provider, service, env)
        if provider is not current:
            trace.set_tracer_provider(provider)

        # Feed, email, forms and bot requests all go through aiohttp
        AioHttpClientInstrumentor().instrument()
        # Adds otelTraceID/otelSpanID to log records; the log format is left alone
        LoggingInstrumentor().instrument(set_logging_format=False)

        atexit.register(provider.shutdown)
        _provider = provider


def get_tracer(name: str = DEFAULT_SERVICE_NAME):
    return trace.get_tracer(f"{DEFAULT_SERVICE_NAME}.{name}")


def add_span_attributes(**attributes: Any) -> None:
    """Attach outcome attributes to the active span; ``None`` values are skipped."""
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


@contextmanager
def _step_span(tracer, name: str, attributes: Dict[str, Any]) -> Iterator[Span]:
    with tracer.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, f"{type(e).__name__}: {e}"))
            raise


def trace_span(
    span_name: str | None = None,
    *,
    tracer_name: str | None = None,
    static_attrs: Dict[str, Any] | None = None,
    attr_from_args: Optional[Callable[..., Dict[str, Any]]] = None,
):
    """Run the decorated pipeline step inside a span.

    Args:
        span_name: Span name, defaulting to the function's qualified name
        tracer_name: Subsystem tracer (gatherer, sender, ...), defaulting to the module
        static_attrs: Attributes set on every call
        attr_from_args: Called with the step's arguments; returns extra attributes

    Exceptions mark the span as failed and propagate unchanged.
    """

    def _decorator(func):
        name = span_name or func.__qualname__
        tracer = get_tracer(tracer_name or func.__module__)

        def _attributes(args, kwargs) -> Dict[str, Any]:
            attributes = dict(static_attrs or {})
            if attr_from_args is not None:
                attributes.update(attr_from_args(*args, **kwargs) or {})
            return attributes

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _async_step(*args, **kwargs):
                with _step_span(tracer, name, _attributes(args, kwargs)):
                    return await func(*args, **kwargs)

            return _async_step

        @functools.wraps(func)
        def _step(*args, **kwargs):
            with _step_span(tracer, name, _attributes(args, kwargs)):
                return func(*args, **kwargs)

        return _step

    return _decorator
