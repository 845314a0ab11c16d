"""Webhook signature verification across both envelope families."""

import base64
import hashlib
import hmac

import pytest

from botpay.services.webhooks.signatures import verify

SECRET = "whsec-shop-secret"
PAYLOAD = b'{"order_id":"p-1","status":"completed","tx_hash":"0xabc"}'


def hex_digest(payload: bytes = PAYLOAD, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def multi_signature(payload: bytes, msg_id: str, timestamp: str, key: bytes = SECRET.encode()) -> str:
    signed = msg_id.encode() + b"." + timestamp.encode() + b"." + payload
    return "v1," + base64.b64encode(hmac.new(key, signed, hashlib.sha256).digest()).decode()


MULTI_HEADERS = {"webhook-id": "msg_1", "webhook-timestamp": "1760000000"}


@pytest.mark.parametrize(
    "header",
    [
        hex_digest(),
        "sha256=" + hex_digest(),
        "SHA256=" + hex_digest().upper(),
        "  " + hex_digest() + "  ",
    ],
)
def test_hex_digest_verifies_with_prefix_and_case(header):
    assert verify(PAYLOAD, header, {}, SECRET)


def test_payload_as_text_is_accepted():
    assert verify(PAYLOAD.decode(), hex_digest(), None, SECRET)


def test_any_payload_byte_mutation_fails():
    header = hex_digest()
    for index in range(len(PAYLOAD)):
        mutated = bytearray(PAYLOAD)
        mutated[index] ^= 0x01
        assert not verify(bytes(mutated), header, {}, SECRET)


def test_any_signature_character_mutation_fails():
    header = hex_digest()
    for index, char in enumerate(header):
        replacement = "0" if char != "0" else "1"
        mutated = header[:index] + replacement + header[index + 1:]
        assert not verify(PAYLOAD, mutated, {}, SECRET)


@pytest.mark.parametrize(
    "header, secret",
    [
        (hex_digest(secret="other-secret"), SECRET),
        (hex_digest(), ""),
        (hex_digest(), None),
        ("", SECRET),
        (None, SECRET),
        ("   ", SECRET),
        ("not-hex-at-all", SECRET),
        ("sha256=", SECRET),
        (hex_digest()[:-2], SECRET),
    ],
)
def test_malformed_or_wrong_inputs_fail_without_raising(header, secret):
    assert verify(PAYLOAD, header, {}, secret) is False


def test_multi_signature_verifies():
    header = multi_signature(PAYLOAD, "msg_1", "1760000000")
    assert verify(PAYLOAD, header, MULTI_HEADERS, SECRET)


def test_multi_signature_accepts_any_matching_candidate():
    good = multi_signature(PAYLOAD, "msg_1", "1760000000")
    stale = multi_signature(PAYLOAD, "msg_1", "1760000000", key=b"rotated-out")
    assert verify(PAYLOAD, f"{stale} {good}", MULTI_HEADERS, SECRET)
    assert verify(PAYLOAD, f"v1,!!notbase64!! {good}", MULTI_HEADERS, SECRET)


def test_multi_signature_with_no_matching_candidate_fails():
    stale = multi_signature(PAYLOAD, "msg_1", "1760000000", key=b"rotated-out")
    assert not verify(PAYLOAD, f"{stale} v1a,AAAA", MULTI_HEADERS, SECRET)


def test_multi_signature_binds_message_id_and_timestamp():
    header = multi_signature(PAYLOAD, "msg_1", "1760000000")
    assert not verify(PAYLOAD, header, {"webhook-id": "msg_2", "webhook-timestamp": "1760000000"}, SECRET)
    assert not verify(PAYLOAD, header, {"webhook-id": "msg_1", "webhook-timestamp": "1760000001"}, SECRET)


def test_multi_signature_requires_aux_headers():
    header = multi_signature(PAYLOAD, "msg_1", "1760000000")
    assert not verify(PAYLOAD, header, {}, SECRET)
    assert not verify(PAYLOAD, header, None, SECRET)
    assert not verify(PAYLOAD, header, {"webhook-id": "msg_1"}, SECRET)


def test_multi_signature_header_names_are_case_insensitive():
    header = multi_signature(PAYLOAD, "msg_1", "1760000000")
    assert verify(PAYLOAD, header, {"Webhook-Id": "msg_1", "Webhook-Timestamp": "1760000000"}, SECRET)


def test_multi_signature_with_prefixed_base64_secret():
    key = b"sixteen byte key"
    secret = "whsec_" + base64.b64encode(key).decode()
    header = multi_signature(PAYLOAD, "msg_1", "1760000000", key=key)
    assert verify(PAYLOAD, header, MULTI_HEADERS, secret)


def test_multi_signature_payload_mutation_fails():
    header = multi_signature(PAYLOAD, "msg_1", "1760000000")
    assert not verify(PAYLOAD + b" ", header, MULTI_HEADERS, SECRET)
