"""
Observability module - Logging and Metrics.
"""

from storekit_subscriptions.observability.logging import get_logger, log_context, setup_logging
from storekit_subscriptions.observability.metrics import metrics

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
]
