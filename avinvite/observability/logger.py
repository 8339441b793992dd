import os
import time
import json
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class TimingContext:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str):
        self.operation_name = operation_name
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration_ms = (time.perf_counter() - self.start_time) * 1000

    def elapsed_ms(self) -> float:
        """Milliseconds since entry, usable before the block exits."""
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000


@contextmanager
def timing(operation_name: str):
    """Context manager for timing operations."""
    context = TimingContext(operation_name)
    with context:
        yield context


def log_event(
    action: str,
    driver: str,
    subject: str,
    recipient: Optional[str],
    event_count: int,
    message_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> None:
    """
    Log a structured pipeline event with required fields.

    Args:
        action: The outcome of the run (e.g. 'sent', 'send_failed', 'no_events')
        driver: The mail driver used (e.g. 'console', 'smtp', 'sendgrid')
        subject: The outbound email subject
        recipient: The outbound recipient, if any
        event_count: Number of calendar events rendered
        message_id: Optional message ID from the mail service
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields to include in the log
    """
    log_entry = {
        "timestamp": _now_iso(),
        "action": action,
        "driver": driver,
        "subject": _sanitize_subject(subject),
        "recipient_domain": _recipient_domain(recipient),
        "event_count": event_count,
    }

    if message_id is not None:
        log_entry["message_id"] = message_id

    if duration_ms is not None:
        log_entry["duration_ms"] = round(duration_ms, 2)

    log_entry.update(kwargs)

    logger.info(json.dumps(log_entry, separators=(',', ':')))


def _recipient_domain(recipient: Optional[str]) -> Optional[str]:
    # Only the domain is logged, never the full address.
    if not recipient or "@" not in recipient:
        return None
    return recipient.rsplit("@", 1)[1].lower()


def _sanitize_subject(subject: str) -> str:
    """
    Sanitize subject to avoid logging sensitive information.

    Args:
        subject: The original subject

    Returns:
        Sanitized subject safe for logging
    """
    sensitive_patterns = [
        "password",
        "secret",
        "token",
        "credential",
    ]

    lowered = (subject or "").lower()
    for pattern in sensitive_patterns:
        if pattern in lowered:
            return "[REDACTED]"

    if len(subject) > 100:
        return subject[:97] + "..."

    return subject


def init_sentry() -> bool:
    """
    Initialize Sentry if enabled and DSN is provided.

    Returns:
        True if Sentry was initialized, False otherwise
    """
    if not os.getenv("OBS_ENABLED", "false").lower() == "true":
        return False

    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        logger.info("Sentry DSN not provided, skipping Sentry initialization")
        return False

    try:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FastApiIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR
                ),
            ],
            traces_sample_rate=0.1,
            environment=os.getenv("ENVIRONMENT", "development"),
        )

        logger.info("Sentry initialized successfully")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def log_error(error: Exception, context: Dict[str, Any] = None) -> None:
    """
    Log an error with optional context.

    Args:
        error: The exception to log
        context: Optional context dictionary
    """
    log_entry = {
        "timestamp": _now_iso(),
        "level": "ERROR",
        "error": str(error),
        "error_type": type(error).__name__,
    }

    if context:
        log_entry.update(context)

    logger.error(json.dumps(log_entry, separators=(',', ':')))


def log_warning(message: str, context: Dict[str, Any] = None) -> None:
    """
    Log a warning with optional context.

    Args:
        message: The warning message
        context: Optional context dictionary
    """
    log_entry = {
        "timestamp": _now_iso(),
        "level": "WARNING",
        "message": message,
    }

    if context:
        log_entry.update(context)

    logger.warning(json.dumps(log_entry, separators=(',', ':')))


def log_info(message: str, context: Dict[str, Any] = None) -> None:
    """Log an info message with optional context."""
    log_entry = {
        "timestamp": _now_iso(),
        "level": "INFO",
        "message": message,
    }

    if context:
        log_entry.update(context)

    logger.info(json.dumps(log_entry, separators=(',', ':')))
