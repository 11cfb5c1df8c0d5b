"""Metrics module for observability."""

from app.metrics.llm_metrics import GenerationMetrics, llm_metrics

__all__ = [
    "GenerationMetrics",
    "llm_metrics",
]
