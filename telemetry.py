#!/usr/bin/env python3
"""
Telemetry setup using OpenTelemetry.

This module configures tracing for aiohttp client requests and the client's
key operations (HTTP GETs, feed date lookups and client operations).

Environment variables:
  - OTEL_SERVICE_NAME (default: pinterest-cache-client)
  - OTEL_ENVIRONMENT (maps to deployment.environment)
  - OTEL_CONSOLE_EXPORT=true to print finished spans to stderr
  - DISABLE_TELEMETRY=true to fully disable

The module is safe to import multiple times; initialization is idempotent.
"""

from __future__ import annotations

import os
import sys
import atexit
import logging
import threading
from typing import Optional
import functools
import inspect

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor

_init_lock = threading.Lock()
_initialized = False
_provider: Optional[TracerProvider] = None

_logger = logging.getLogger(__name__)


def init_telemetry(service_name: Optional[str] = None) -> None:
    """Initialize OpenTelemetry tracing and instrumentation.

    Safe to call multiple times. If DISABLE_TELEMETRY=true, it's a no-op.
    """
    global _initialized, _provider
    if os.environ.get("DISABLE_TELEMETRY", "false").lower() == "true":
        return
    if _initialized:
        return
    with _init_lock:
        if _initialized:
            return

        svc = service_name or os.environ.get("OTEL_SERVICE_NAME", "pinterest-cache-client")
        env = os.environ.get("OTEL_ENVIRONMENT")
        attrs = {"service.name": svc}
        if env:
            attrs["deployment.environment"] = env
        resource = Resource.create(attrs)

        # If a provider was already set by external auto-instrumentation, reuse it
        existing = trace.get_tracer_provider()
        if isinstance(existing, TracerProvider):
            provider = existing
        else:
            provider = TracerProvider(resource=resource)

        if os.environ.get("OTEL_CONSOLE_EXPORT", "false").lower() == "true":
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
            _logger.info("Telemetry initialized with console span export (service=%s)", svc)
        else:
            _logger.debug("Telemetry initialized without exporter (service=%s); spans stay in-process", svc)

        if not isinstance(existing, TracerProvider):
            trace.set_tracer_provider(provider)
        _provider = provider

        try:
            AioHttpClientInstrumentor().instrument()
        except Exception as e:
            _logger.debug("aiohttp instrumentation unavailable: %s", e)
        try:
            # Inject trace/span ids into log records as otelTraceID / otelSpanID without changing format
            LoggingInstrumentor().instrument()
        except Exception as e:
            _logger.debug("logging instrumentation unavailable: %s", e)

        _initialized = True

        def _shutdown():
            if _provider:
                _provider.shutdown()

        # Flush spans on interpreter exit for short-lived commands
        atexit.register(_shutdown)


def get_tracer(name: str = "pinterest-cache-client"):
    """Return the tracer for one part of the client (``fetcher``, ``feeds``, ``client``)."""
    return trace.get_tracer(name)


def _mark_failed(span, error: Exception) -> None:
    if span:
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR))


def trace_span(
    span_name: str | None = None,
    *,
    tracer_name: str | None = None,
    static_attrs: dict | None = None,
    attr_from_args: Optional[callable] = None,
):
    """Run each call of the decorated function inside a span.

    Used on the gateway's GETs, the feed date lookup and every client
    operation, so one CLI command yields a span tree of cache-or-fetch work.
    ``attr_from_args`` receives the call's arguments and returns span
    attributes such as the username, board or pin count. Failures are
    recorded on the span and re-raised unchanged.
    """

    def _decorator(func):
        name = span_name or f"{func.__module__}.{func.__name__}"
        tracer = get_tracer(tracer_name or name.split(".")[0] or "pinterest-cache-client")

        def _set_attrs(span, args, kwargs):
            if not span:
                return
            try:
                attrs = dict(static_attrs or {})
                if callable(attr_from_args):
                    attrs.update(attr_from_args(*args, **kwargs) or {})
                span.set_attributes(attrs)
            except Exception as e:
                # Attribute extraction must not break the traced call
                _logger.debug("Could not set attributes on span %s: %s", name, e)

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _async_wrapper(*args, **kwargs):
                with tracer.start_as_current_span(name) as span:
                    _set_attrs(span, args, kwargs)
                    try:
                        return await func(*args, **kwargs)
                    except Exception as e:
                        _mark_failed(span, e)
                        raise

            return _async_wrapper

        @functools.wraps(func)
        def _wrapper(*args, **kwargs):
            with tracer.start_as_current_span(name) as span:
                _set_attrs(span, args, kwargs)
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    _mark_failed(span, e)
                    raise

        return _wrapper

    return _decorator
