"""
Observability module for staking pools: Prometheus metrics and OpenTelemetry tracing.
"""

from .tracing import (
    setup_tracing,
    shutdown_tracing,
    create_span,
    get_tracer,
)
from .metrics import MetricsCollector

__all__ = [
    'setup_tracing',
    'shutdown_tracing',
    'create_span',
    'get_tracer',
    'MetricsCollector',
]
