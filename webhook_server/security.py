"""
Security module for the webhook server.

Provides input validation, header normalization and log sanitization.
"""

import re
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple


# ============================================================
# Input Validation
# ============================================================

WEBHOOK_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_.\-]{1,128}$')
REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9_.\-]{1,64}$')


class ValidationError(Exception):
    """Raised when input validation fails."""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ConfigError(ValidationError):
    """Raised when the server configuration is invalid."""


def is_valid_webhook_name(name: str) -> bool:
    """Check whether a name could be a configured webhook endpoint."""
    return bool(WEBHOOK_NAME_PATTERN.match(name))


# ============================================================
# Headers
# ============================================================

def normalize_headers(items: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """
    Convert raw header pairs into a dict with lower-cased names.

    The first occurrence of a repeated header wins.
    """
    headers: Dict[str, str] = {}
    for key, value in items:
        headers.setdefault(key.lower(), value)
    return headers


# ============================================================
# Request ID Generation
# ============================================================

def generate_request_id() -> str:
    """Generate a unique request ID for audit trail correlation."""
    return str(uuid.uuid4())


def request_id_from_headers(headers: Dict[str, str]) -> str:
    """Reuse a well-formed `X-Request-ID` header, or generate a new ID."""
    supplied = headers.get("x-request-id", "")
    if supplied and REQUEST_ID_PATTERN.match(supplied):
        return supplied
    return generate_request_id()


# ============================================================
# Audit Logging Helpers
# ============================================================

SENSITIVE_FIELDS = [
    "secret",
    "password",
    "basic_auth_password",
    "authorization",
    "signature",
    "x-hub-signature",
    "token",
]


def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of (lower-case) field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    result = {}
    for key, value in data.items():
        if str(key).lower() in sensitive_fields:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
