"""
ELM CDR Observability Layer

Logging, tracing and metrics.
"""

from elm_cdr.observability.log_config import JSONFormatter, setup_logging
from elm_cdr.observability.metrics import (
    Counter,
    Histogram,
    MetricsRegistry,
    RetrievalMetrics,
    get_registry,
    get_retrieval_metrics,
    reset_metrics,
)
from elm_cdr.observability.tracer import (
    Span,
    SpanEvent,
    SpanKind,
    SpanStatus,
    Tracer,
    get_tracer,
    reset_tracers,
)

__all__ = [
    # Logging
    "JSONFormatter",
    "setup_logging",
    # Tracer
    "Tracer",
    "Span",
    "SpanEvent",
    "SpanKind",
    "SpanStatus",
    "get_tracer",
    "reset_tracers",
    # Metrics
    "MetricsRegistry",
    "Counter",
    "Histogram",
    "RetrievalMetrics",
    "get_registry",
    "get_retrieval_metrics",
    "reset_metrics",
]
