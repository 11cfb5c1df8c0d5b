"""Generative-text service metrics for Prometheus.

Tracks call latency per call shape, retries of transient failures, and how
often the conversation and advice paths fall back to deterministic output.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    REGISTRY,
    CollectorRegistry,
)


class GenerationMetrics:
    """Custom Prometheus metrics for the generative-text client and its callers."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        """Initialize metrics.

        Args:
            registry: Prometheus registry to use
        """
        self.registry = registry

        self.request_duration = Histogram(
            "llm_request_duration_seconds",
            "Time spent in generative-text calls, retries included",
            labelnames=["operation", "status"],
            buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=registry,
        )

        self.request_total = Counter(
            "llm_requests_total",
            "Total number of generative-text calls",
            labelnames=["operation", "status"],
            registry=registry,
        )

        self.retry_attempts = Counter(
            "llm_retry_attempts_total",
            "Retries issued after transient failures",
            labelnames=["operation"],
            registry=registry,
        )

        self.errors_total = Counter(
            "llm_errors_total",
            "Generative-text errors by type",
            labelnames=["error_type", "operation"],
            registry=registry,
        )

        self.fallback_total = Counter(
            "llm_fallback_total",
            "Times a caller substituted deterministic output",
            labelnames=["component", "reason"],
            registry=registry,
        )

    @contextmanager
    def track_request(self, operation: str):
        """Context manager timing one logical call (all attempts).

        Args:
            operation: Call shape (complete, complete_with_image, chat)
        """
        start_time = time.perf_counter()
        status = "success"

        try:
            yield
        except Exception as e:
            status = "error"
            self.errors_total.labels(
                error_type=type(e).__name__,
                operation=operation,
            ).inc()
            raise
        finally:
            duration = time.perf_counter() - start_time
            self.request_duration.labels(operation=operation, status=status).observe(duration)
            self.request_total.labels(operation=operation, status=status).inc()

    def record_retry(self, operation: str) -> None:
        """Record a retry of a transient failure."""
        self.retry_attempts.labels(operation=operation).inc()

    def record_fallback(self, component: str, reason: str) -> None:
        """Record a deterministic fallback.

        Args:
            component: conversation, advice, budget or question
            reason: Short machine-readable cause
        """
        self.fallback_total.labels(component=component, reason=reason).inc()


# Singleton instance
llm_metrics = GenerationMetrics()
