"""
Observability module - Logging, Metrics, and Tracing.
"""

from ledger.observability.logging import get_logger, setup_logging
from ledger.observability.metrics import metrics
from ledger.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
