"""
Structured Logging with Structlog.

Every entry carries the service identity and which transaction source the
process reads entitlements from, so local-store and App Store deployments can
be told apart in aggregated logs. ``log_context`` binds per-purchase and
per-transaction identifiers.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from storekit_subscriptions.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service and transaction source context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    if settings.app_store_configured:
        event_dict["transaction_source"] = "app_store"
        event_dict["store_environment"] = settings.storekit_environment.lower()
    else:
        event_dict["transaction_source"] = "local"
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    A JSON entry for an applied update looks like:
    {
        "event": "transaction_applied",
        "level": "info",
        "timestamp": "2026-10-18T12:00:00.123456Z",
        "logger": "storekit_subscriptions.services.reconciler",
        "service": "storekit-subscriptions",
        "version": "0.1.0",
        "transaction_source": "app_store",
        "store_environment": "sandbox",
        "transaction_id": "2000000000000001",
        "purchased": true
    }
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("transaction_applied", transaction_id=tx_id, purchased=True)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(product_id="com.sample.app.subscription.standard"):
            logger.info("purchase_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - clear context variables."""
        structlog.contextvars.unbind_contextvars(*self.context.keys())
