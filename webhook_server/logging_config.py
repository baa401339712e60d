"""
Logging configuration for the webhook server.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line. Audit records carry their event fields in
    `extra_fields`; plain records get their source location instead.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, 'extra_fields', None)
        if extra_fields:
            log_data.update(extra_fields)
        else:
            log_data["location"] = f"{record.module}:{record.funcName}:{record.lineno}"

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    Records incoming webhooks, authorization decisions and dispatch
    outcomes. Callers must never pass secrets, passwords or raw
    signature values.
    """

    def __init__(self, name: str = "webhook_server.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
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

    def webhook_received(self, webhook: str, method: str, body_size: int) -> None:
        """Log an incoming webhook call."""
        self._log(
            logging.INFO,
            "WEBHOOK_RECEIVED",
            webhook=webhook,
            method=method,
            body_size=body_size,
            message=f"Incoming webhook for \"{webhook}\""
        )

    def authorization_decision(
        self,
        webhook: str,
        allowed: bool,
        signature: str,
        basic_auth: str,
        reason: Optional[str] = None
    ) -> None:
        """Log an authorization decision."""
        level = logging.INFO if allowed else logging.WARNING
        self._log(
            level,
            "AUTHORIZATION_DECISION",
            webhook=webhook,
            allowed=allowed,
            signature=signature,
            basic_auth=basic_auth,
            reason=reason,
            message=f"Authorization {'granted' if allowed else 'denied'} for {webhook}"
        )

    def dispatch_complete(
        self,
        webhook: str,
        execution_target: str,
        task_id: Optional[str] = None
    ) -> None:
        """Log a task handed to the runner."""
        self._log(
            logging.INFO,
            "DISPATCH_COMPLETE",
            webhook=webhook,
            execution_target=execution_target,
            task_id=task_id,
            message=f"Task for {webhook} added to group {execution_target}"
        )

    def dispatch_failed(
        self,
        webhook: str,
        state: str,
        details: Optional[str] = None
    ) -> None:
        """Log a request that ended before reaching the runner."""
        level = logging.ERROR if state == "RUNNER_ERROR" else logging.WARNING
        self._log(
            level,
            "DISPATCH_FAILED",
            webhook=webhook,
            state=state,
            details=details,
            message=f"Dispatch of {webhook} failed: {state}"
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
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create formatter
    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (if specified)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: str) -> str:
    """Bind a request ID to the current context for all following log records."""
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = AuditLogger()
