"""
Logging configuration for OrderGuard.

Provides structured JSON logging for the audit trail of registrations,
signature checks and order storage.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from . import config

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    Provides methods for logging client registration, signature
    decisions, order storage and request failures.
    """

    def __init__(self, name: str = "orderguard.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        if not self._logger.isEnabledFor(level):
            return

        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def client_registered(
        self,
        client_id: int,
        fingerprint: str,
        new: bool
    ) -> None:
        """Log a registration (new or idempotent repeat)."""
        self._log(
            logging.INFO,
            "CLIENT_REGISTERED",
            client_id=client_id,
            fingerprint=fingerprint,
            new=new,
            message=f"Client {client_id} registered" if new else f"Client {client_id} already registered"
        )

    def registration_rejected(
        self,
        fingerprint: str,
        reason: str
    ) -> None:
        """Log a rejected registration."""
        self._log(
            logging.WARNING,
            "REGISTRATION_REJECTED",
            fingerprint=fingerprint,
            reason=reason,
            message=f"Registration rejected: {reason}"
        )

    def order_received(
        self,
        client_id: int,
        content_length: int
    ) -> None:
        """Log an incoming envelope."""
        self._log(
            logging.DEBUG,
            "ORDER_RECEIVED",
            client_id=client_id,
            content_length=content_length,
            message=f"Envelope received from client {client_id}"
        )

    def signature_checked(
        self,
        client_id: int
    ) -> None:
        """Log an accepted signature. Rejections go through security_event."""
        self._log(
            logging.INFO,
            "SIGNATURE_CHECKED",
            client_id=client_id,
            valid=True,
            message="message signature is valid"
        )

    def order_stored(
        self,
        client_id: int,
        order_type: str,
        history_size: int
    ) -> None:
        """Log an encrypted order appended to a history."""
        self._log(
            logging.INFO,
            "ORDER_STORED",
            client_id=client_id,
            order_type=order_type,
            history_size=history_size,
            message=f"{order_type} stored for client {client_id}"
        )

    def orders_listed(
        self,
        client_id: int,
        count: int
    ) -> None:
        """Log a history listing."""
        self._log(
            logging.INFO,
            "ORDERS_LISTED",
            client_id=client_id,
            count=count,
            message=f"{count} orders listed for client {client_id}"
        )

    def request_failed(
        self,
        outcome: str,
        reason: str,
        client_id: Optional[int] = None
    ) -> None:
        """Log a request resolved with a failure response."""
        self._log(
            logging.ERROR,
            "REQUEST_FAILED",
            outcome=outcome,
            reason=reason,
            client_id=client_id,
            message=f"Request failed ({outcome}): {reason}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL); defaults
            to ORDERGUARD_LOG_LEVEL, or DEBUG when ORDERGUARD_DEBUG is set
        json_format: Use JSON formatting; defaults to ORDERGUARD_LOG_JSON
        log_file: Optional file path for log output
    """
    if level is None:
        level = "DEBUG" if config.is_debug() else config.LOG_LEVEL
    if json_format is None:
        json_format = config.LOG_JSON

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


@contextmanager
def request_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a request ID for the duration of a block.

    The previous ID (if any) is restored on exit, so scopes nest.

    Yields:
        The request ID bound inside the block
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


# Global audit logger instance
audit_log = AuditLogger()
