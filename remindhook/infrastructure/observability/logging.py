"""
Structured logging setup for the reminder service.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO", environment: str = "development") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Deployment name stamped on every entry
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            service_context(environment),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def service_context(environment: str):
    """Processor tagging every entry with the service and deployment names."""

    def add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", "remindhook")
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service_context


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_delivery(
    reminder_id: str,
    time_slot_id: str,
    platform: str,
    success: bool,
    duration_ms: float,
    status_code: int | None = None,
    error: str | None = None,
):
    """Log a webhook delivery attempt with consistent fields."""
    logger = get_logger("delivery")

    log_data = {
        "reminder_id": reminder_id,
        "time_slot_id": time_slot_id,
        "platform": platform,
        "duration_ms": duration_ms,
        "event_type": "webhook_delivery",
    }

    if status_code is not None:
        log_data["status_code"] = status_code

    if error:
        log_data["error"] = error

    if success:
        logger.info("Webhook delivered", **log_data)
    else:
        logger.warning("Webhook delivery failed", **log_data)
