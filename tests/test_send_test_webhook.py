"""Operator webhook signer agrees with the service verifier."""

import base64

import pytest

from botpay.services.webhooks.signatures import verify
from scripts.send_test_webhook import sign_hex, sign_multi

BODY = b'{"gatewayId":"g1","confirmed":true,"tx":"0xabc"}'
HEADERS = {"webhook-id": "msg_1", "webhook-timestamp": "1760788800"}


@pytest.mark.parametrize(
    "secret",
    ["plain-secret", "whsec_" + base64.b64encode(b"sixteen byte key").decode()],
)
def test_multi_signature_from_script_verifies(secret):
    header = sign_multi(secret, BODY, HEADERS["webhook-id"], HEADERS["webhook-timestamp"])

    assert verify(BODY, header, HEADERS, secret)


def test_hex_signature_from_script_verifies():
    assert verify(BODY, sign_hex("plain-secret", BODY), {}, "plain-secret")
    assert not verify(BODY, sign_hex("plain-secret", BODY), {}, "other-secret")
