"""Sign a JSON body and post it to the webhook endpoint.

Useful for manual duplicate-delivery and bad-signature checks.
"""

import argparse
import base64
import hashlib
import hmac
import json
import time
from pathlib import Path
from uuid import uuid4

import httpx

from botpay.services.webhooks.signatures import multi_signature_key


def sign_hex(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def sign_multi(secret: str, body: bytes, message_id: str, timestamp: str) -> str:
    signed = b".".join([message_id.encode("utf-8"), timestamp.encode("utf-8"), body])
    digest = hmac.new(multi_signature_key(secret), signed, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode("ascii")


def main() -> None:
    """Parse CLI args, sign, and deliver one webhook body."""

    parser = argparse.ArgumentParser(description="Post a signed webhook to the payment service.")
    parser.add_argument("--api-url", default="http://localhost:3000")
    parser.add_argument("--secret", default=None, help="Bot webhook secret; omit to send unsigned")
    parser.add_argument("--scheme", choices=["hex", "multi"], default="hex")
    parser.add_argument("--json", dest="json_inline", default=None, help="Inline JSON body")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to JSON body")
    parser.add_argument("--tamper", action="store_true", help="Flip one byte after signing")
    args = parser.parse_args()

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")
    raw = args.json_inline if args.json_inline else Path(args.json_file).read_text()
    body = json.dumps(json.loads(raw), separators=(",", ":")).encode("utf-8")

    headers = {"content-type": "application/json"}
    if args.secret and args.scheme == "hex":
        headers["x-signature"] = sign_hex(args.secret, body)
    elif args.secret:
        message_id = f"msg_{uuid4().hex}"
        timestamp = str(int(time.time()))
        headers["webhook-id"] = message_id
        headers["webhook-timestamp"] = timestamp
        headers["webhook-signature"] = sign_multi(args.secret, body, message_id, timestamp)
    if args.tamper:
        body = body[:-1] + b" "

    resp = httpx.post(f"{args.api_url}/api/payments/webhook", content=body, headers=headers, timeout=10.0)
    print(resp.status_code, resp.text)


if __name__ == "__main__":
    main()
