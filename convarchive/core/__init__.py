from convarchive.core.logging import correlation_scope, get_correlation_context, setup_logging
from convarchive.core.telemetry import get_tracer, init_tracing, shutdown_tracing

__all__ = [
    "correlation_scope",
    "get_correlation_context",
    "get_tracer",
    "init_tracing",
    "setup_logging",
    "shutdown_tracing",
]
