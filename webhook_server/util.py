"""
Utility functions for the webhook server.

Provides HMAC digests, timing-safe comparison and base64 helpers
shared by the authentication layer and the client tools.
"""

import base64
import binascii
import hashlib
import hmac
from typing import Optional, Union


# Algorithms accepted in `<alg>=<hex>` signature headers
SIGNATURE_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode('utf-8')
    return value


def hmac_digest(secret: Union[str, bytes], body: bytes, algorithm: str = "sha1") -> bytes:
    """
    Compute the HMAC of a request body.

    Args:
        secret: Shared secret used as the MAC key
        body: Exact bytes of the request body
        algorithm: One of SIGNATURE_ALGORITHMS

    Returns:
        The raw digest bytes

    Raises:
        KeyError: If the algorithm is not supported
    """
    digestmod = SIGNATURE_ALGORITHMS[algorithm]
    return hmac.new(_to_bytes(secret), body, digestmod).digest()


def hmac_hex(secret: Union[str, bytes], body: bytes, algorithm: str = "sha1") -> str:
    """Compute the HMAC of a body and return it as a hex string."""
    return hmac_digest(secret, body, algorithm).hex()


def signature_header_value(secret: Union[str, bytes], body: bytes, algorithm: str = "sha1") -> str:
    """Build a `<alg>=<hex>` signature header value for a body."""
    return f"{algorithm}={hmac_hex(secret, body, algorithm)}"


def constant_time_compare(expected: Union[str, bytes], supplied: Union[str, bytes]) -> bool:
    """
    Compare two strings/bytes in constant time to prevent timing attacks.

    The supplied value is padded or truncated to the expected length before
    the timing-safe comparison, so the work done never depends on where the
    values differ or on the supplied length. The length check is folded in
    afterwards.
    """
    expected = _to_bytes(expected)
    supplied = _to_bytes(supplied)
    candidate = supplied[:len(expected)].ljust(len(expected), b'\0')
    same = hmac.compare_digest(expected, candidate)
    return same and len(supplied) == len(expected)


def decode_hex(s: str) -> Optional[bytes]:
    """Decode a hex string, returning None if it is not valid hex."""
    try:
        return bytes.fromhex(s)
    except (ValueError, TypeError):
        return None


def b64_lenient_decode(s: str) -> Optional[bytes]:
    """
    Decode base64 in either the standard or the URL-safe alphabet.

    Padding is optional. Returns None for anything that is not base64.
    """
    s = s.strip().replace('-', '+').replace('_', '/')
    padding = 4 - (len(s) % 4)
    if padding != 4:
        s += '=' * padding
    try:
        return base64.b64decode(s.encode('ascii'), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        return None
