"""
Request authentication for the webhook server.

Verifies that an inbound webhook call is allowed to trigger an action:
  - HMAC signature over the raw request body (`Signature` / `X-Hub-Signature`)
  - HTTP Basic Auth credentials (`Authorization`)
  - An authorization policy combining both mechanisms
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Tuple

from .util import SIGNATURE_ALGORITHMS, b64_lenient_decode, constant_time_compare, decode_hex, hmac_digest

logger = logging.getLogger(__name__)

# First present header wins. Github sends its own header name.
SIGNATURE_HEADERS = ("signature", "x-hub-signature")
AUTHORIZATION_HEADER = "authorization"


class VerificationResult(str, Enum):
    """Outcome of a single authentication mechanism."""
    SKIPPED = "SKIPPED"   # Mechanism not configured
    PASSED = "PASSED"
    FAILED = "FAILED"


class DenyReason(str, Enum):
    """Internal reason for a denied request. Never returned to the caller."""
    SIGNATURE_FAILED = "SIGNATURE_FAILED"
    BASIC_AUTH_FAILED = "BASIC_AUTH_FAILED"
    BOTH_FAILED = "BOTH_FAILED"


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide authentication settings."""
    shared_secret: Optional[bytes] = None
    basic_auth_credentials: Optional[Tuple[str, str]] = None
    require_both: bool = False

    @property
    def has_secret(self) -> bool:
        return bool(self.shared_secret)

    @property
    def has_basic_auth(self) -> bool:
        return self.basic_auth_credentials is not None

    def __repr__(self) -> str:
        # Keep secrets out of tracebacks and debug logs
        return (
            f"AuthConfig(has_secret={self.has_secret}, "
            f"has_basic_auth={self.has_basic_auth}, require_both={self.require_both})"
        )


@dataclass(frozen=True)
class AuthorizationDecision:
    """Allow/deny decision of the authorization policy."""
    allowed: bool
    reason: Optional[DenyReason] = None
    signature: VerificationResult = VerificationResult.SKIPPED
    basic_auth: VerificationResult = VerificationResult.SKIPPED


# ============================================================
# Signature
# ============================================================

def get_signature_header(headers: Mapping[str, str]) -> Optional[str]:
    """
    Extract the signature header from the (lower-cased) request headers.

    It's possible to receive the signature from multiple headers, since
    Github uses its own header name for the signature.
    """
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value is not None:
            return value
    return None


def parse_signature_header(value: str) -> Optional[Tuple[str, bytes]]:
    """
    Parse a `<algorithm>=<hex-digest>` header value.

    Returns:
        Tuple of (algorithm, digest bytes), or None if the value is malformed
        or names an unsupported algorithm
    """
    algorithm, sep, hex_digest = value.strip().partition("=")
    if not sep:
        logger.warning("Got request with missing algorithm prefix in signature")
        return None

    algorithm = algorithm.lower()
    if algorithm not in SIGNATURE_ALGORITHMS:
        logger.warning("Got request with unsupported signature algorithm: %s", algorithm)
        return None

    digest = decode_hex(hex_digest)
    if digest is None:
        logger.warning("Got request with non-hex signature digest")
        return None

    return algorithm, digest


def verify_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[bytes],
) -> VerificationResult:
    """
    Verify the HMAC signature of a request body.

    Args:
        raw_body: Exact bytes of the request body as received
        signature_header: Value of the first present signature header
        secret: Shared secret, or None if signatures are not configured

    Returns:
        SKIPPED if no secret is configured, PASSED on an exact digest
        match, FAILED otherwise
    """
    if not secret:
        return VerificationResult.SKIPPED

    if signature_header is None:
        logger.warning("No signature header found")
        return VerificationResult.FAILED

    parsed = parse_signature_header(signature_header)
    if parsed is None:
        return VerificationResult.FAILED
    algorithm, supplied = parsed

    expected = hmac_digest(secret, raw_body, algorithm)
    if not constant_time_compare(expected, supplied):
        logger.warning("Got request with invalid %s signature", algorithm)
        return VerificationResult.FAILED

    return VerificationResult.PASSED


# ============================================================
# Basic Auth
# ============================================================

def parse_basic_auth_header(value: str) -> Optional[Tuple[str, str]]:
    """
    Decode a `Basic <base64>` header into (username, password).

    Returns None for anything malformed.
    """
    scheme, _, token = value.strip().partition(" ")
    if scheme != "Basic" or not token:
        logger.warning("Got request with missing Basic prefix")
        return None

    decoded = b64_lenient_decode(token)
    if decoded is None:
        logger.warning("Got request with malformed base64")
        return None

    try:
        text = decoded.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Got request with non utf8 token")
        return None

    username, sep, password = text.partition(":")
    if not sep:
        logger.warning("Got request with malformed credential string")
        return None

    return username, password


def verify_basic_auth(
    auth_header: Optional[str],
    credentials: Optional[Tuple[str, str]],
) -> VerificationResult:
    """
    Verify HTTP Basic Auth credentials.

    Args:
        auth_header: Value of the `Authorization` header
        credentials: Configured (username, password), or None

    Returns:
        SKIPPED if no credentials are configured, PASSED if both
        username and password match exactly, FAILED otherwise
    """
    if credentials is None:
        return VerificationResult.SKIPPED

    if auth_header is None:
        logger.warning("No authorization header found")
        return VerificationResult.FAILED

    parsed = parse_basic_auth_header(auth_header)
    if parsed is None:
        return VerificationResult.FAILED

    user, password = credentials
    user_ok = constant_time_compare(user, parsed[0])
    password_ok = constant_time_compare(password, parsed[1])
    if not (user_ok and password_ok):
        logger.warning("Got invalid basic auth credentials")
        return VerificationResult.FAILED

    return VerificationResult.PASSED


# ============================================================
# Policy
# ============================================================

def _deny_reason(signature: VerificationResult, basic_auth: VerificationResult) -> DenyReason:
    sig_failed = signature == VerificationResult.FAILED
    auth_failed = basic_auth == VerificationResult.FAILED
    if sig_failed and auth_failed:
        return DenyReason.BOTH_FAILED
    if sig_failed:
        return DenyReason.SIGNATURE_FAILED
    return DenyReason.BASIC_AUTH_FAILED


def authorize(
    raw_body: bytes,
    headers: Mapping[str, str],
    config: AuthConfig,
) -> AuthorizationDecision:
    """
    Decide whether a request may trigger an action.

    Both mechanisms are always evaluated. Mechanisms that are not configured
    are SKIPPED and take no part in the decision; a configured mechanism
    that FAILED is never treated as skipped.

    - Nothing configured: allow.
    - `require_both`: allow iff every configured mechanism PASSED.
    - Otherwise: allow iff at least one configured mechanism PASSED.
    """
    signature = verify_signature(raw_body, get_signature_header(headers), config.shared_secret)
    basic_auth = verify_basic_auth(headers.get(AUTHORIZATION_HEADER), config.basic_auth_credentials)

    configured = [r for r in (signature, basic_auth) if r != VerificationResult.SKIPPED]
    if not configured:
        allowed = True
    elif config.require_both:
        allowed = all(r == VerificationResult.PASSED for r in configured)
    else:
        allowed = any(r == VerificationResult.PASSED for r in configured)

    return AuthorizationDecision(
        allowed=allowed,
        reason=None if allowed else _deny_reason(signature, basic_auth),
        signature=signature,
        basic_auth=basic_auth,
    )
