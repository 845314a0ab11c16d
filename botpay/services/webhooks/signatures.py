"""Webhook signature verification.

Two envelope families are accepted, and a delivery verifies if any scheme
matches:

* single digest: hex HMAC-SHA256 of the raw body, optionally tagged
  (``sha256=<hex>``), as sent in ``x-signature``;
* multi-signature: space separated ``<version>,<base64>`` pairs, each a
  base64 HMAC-SHA256 over ``<webhook-id>.<webhook-timestamp>.<raw body>``.

Verification is pure and never raises; malformed input verifies as False.
"""

import base64
import binascii
import hashlib
import hmac
from collections.abc import Mapping

DIGEST_PREFIXES = ("sha256=", "sha256:", "hmac-sha256=")
MESSAGE_ID_HEADERS = ("webhook-id", "svix-id")
TIMESTAMP_HEADERS = ("webhook-timestamp", "svix-timestamp")
SECRET_PREFIX = "whsec_"


def _as_bytes(value: bytes | str) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def _lower_keys(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {str(key).lower(): str(value) for key, value in headers.items()}


def _first_header(headers: dict[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = headers.get(name)
        if value:
            return value.strip()
    return None


def _hmac_sha256(key: bytes, message: bytes) -> bytes:
    return hmac.new(key, message, hashlib.sha256).digest()


def multi_signature_key(secret: str) -> bytes:
    # Secrets issued as `whsec_<base64>` sign with the decoded bytes.
    if secret.startswith(SECRET_PREFIX):
        try:
            return base64.b64decode(secret[len(SECRET_PREFIX):], validate=True)
        except (binascii.Error, ValueError):
            return _as_bytes(secret)
    return _as_bytes(secret)


def verify_hex_digest(payload: bytes, signature: str, secret: str) -> bool:
    """Check a single (optionally prefixed) hex HMAC-SHA256 digest."""

    candidate = signature.strip()
    lowered = candidate.lower()
    for prefix in DIGEST_PREFIXES:
        if lowered.startswith(prefix):
            candidate = candidate[len(prefix):]
            break
    try:
        received = bytes.fromhex(candidate)
    except ValueError:
        return False
    expected = _hmac_sha256(_as_bytes(secret), payload)
    return hmac.compare_digest(expected, received)


def verify_multi_signature(
    payload: bytes,
    signature: str,
    headers: Mapping[str, str] | None,
    secret: str,
) -> bool:
    """Check `version,base64` candidates; any single match is sufficient."""

    lowered = _lower_keys(headers)
    message_id = _first_header(lowered, MESSAGE_ID_HEADERS)
    timestamp = _first_header(lowered, TIMESTAMP_HEADERS)
    if not message_id or not timestamp:
        return False

    signed = b".".join([_as_bytes(message_id), _as_bytes(timestamp), payload])
    expected = _hmac_sha256(multi_signature_key(secret), signed)

    for candidate in signature.split():
        version, sep, encoded = candidate.partition(",")
        if not sep or not version or not encoded:
            continue
        try:
            received = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            continue
        if hmac.compare_digest(expected, received):
            return True
    return False


def verify(
    raw_payload: bytes | str,
    signature_header: str | None,
    aux_headers: Mapping[str, str] | None,
    secret: str | None,
) -> bool:
    """Return True when `signature_header` authenticates `raw_payload` under `secret`."""

    if not secret or not signature_header or not signature_header.strip():
        return False
    try:
        payload = _as_bytes(raw_payload)
        return verify_hex_digest(payload, signature_header, secret) or verify_multi_signature(
            payload, signature_header, aux_headers, secret
        )
    except Exception:
        return False
