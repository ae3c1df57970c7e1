"""OpenTelemetry tracing setup for archive operations.

Exports spans over OTLP gRPC when an endpoint is configured; otherwise all
tracing is a no-op.
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import NoOpTracerProvider

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | NoOpTracerProvider | None = None


def package_version() -> str:
    try:
        return pkg_version("convarchive")
    except PackageNotFoundError:
        return "0.0.0"


def init_tracing(
    *,
    service_name: str = "convarchive",
    env: str = "dev",
    endpoint: str | None = None,
) -> TracerProvider | NoOpTracerProvider:
    """Initialize tracing; an empty *endpoint* installs a no-op provider."""
    global _tracer_provider  # noqa: PLW0603

    if not endpoint:
        provider = NoOpTracerProvider()
        trace.set_tracer_provider(provider)
        _tracer_provider = provider
        logger.info("Tracing disabled (no endpoint configured)")
        return provider

    resource = Resource.create(
        {
            "service.name": service_name,
            "deployment.environment": env,
            "service.version": package_version(),
        }
    )
    provider = TracerProvider(resource=resource)

    try:
        exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info("Tracing enabled -> %s (env=%s)", endpoint, env)
    except Exception:
        logger.warning("Failed to initialize OTLP exporter", exc_info=True)

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the configured provider."""
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    """Flush and shut down the tracer provider."""
    if isinstance(_tracer_provider, TracerProvider):
        _tracer_provider.shutdown()


__all__ = ["get_tracer", "init_tracing", "package_version", "shutdown_tracing"]
