"""Webhook body parsing into a closed set of known event shapes.

The gateway has delivered more than one body layout over time. Each delivery
is resolved here, once, into one of:

* `GatewayStatusEvent`: ``{"id", "order_id", "status", "tx_hash"}``
* `SettlementEvent`: ``{"gatewayId", "confirmed" | "confirmed_at", "tx"}``
* `UnrecognizedEvent`: anything else (still carries ids when present)

Bodies wrapped as ``{"type": ..., "data": {...}}`` are unwrapped first.
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from botpay.common.state_machine import CONFIRMED, EXPIRED, FAILED

CONFIRMED_REMOTE = {"completed", "confirmed", "paid", "settled", "success"}
FAILED_REMOTE = {"failed", "cancelled", "canceled", "rejected"}
EXPIRED_REMOTE = {"expired"}


def map_remote_status(remote_status: str | None) -> str | None:
    """Translate a gateway status string to a terminal local status, if any."""

    if not remote_status:
        return None
    normalized = remote_status.strip().lower()
    if normalized in CONFIRMED_REMOTE:
        return CONFIRMED
    if normalized in FAILED_REMOTE:
        return FAILED
    if normalized in EXPIRED_REMOTE:
        return EXPIRED
    return None


class _EventBase(BaseModel):
    gateway_payment_id: str | None = None
    order_id: str | None = None
    tx_hash: str | None = None
    body: dict[str, Any] = Field(default_factory=dict)

    def target_status(self) -> str | None:
        return None


class GatewayStatusEvent(_EventBase):
    kind: Literal["gateway_status"] = "gateway_status"
    status: str

    def target_status(self) -> str | None:
        return map_remote_status(self.status)


class SettlementEvent(_EventBase):
    kind: Literal["settlement"] = "settlement"
    settled: bool

    def target_status(self) -> str | None:
        return CONFIRMED if self.settled else None


class UnrecognizedEvent(_EventBase):
    kind: Literal["unrecognized"] = "unrecognized"


WebhookEvent = Annotated[
    Union[GatewayStatusEvent, SettlementEvent, UnrecognizedEvent],
    Field(discriminator="kind"),
]
_event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)


def _pick(body: dict[str, Any], *names: str) -> str | None:
    for name in names:
        value = body.get(name)
        if value is not None and value != "":
            return str(value)
    return None


def _unwrap(body: dict[str, Any]) -> dict[str, Any]:
    data = body.get("data")
    if isinstance(data, dict) and "type" in body:
        return data
    return body


def _is_settled(fields: dict[str, Any]) -> bool:
    flag = fields.get("confirmed")
    if flag is not None:
        if isinstance(flag, str):
            return flag.strip().lower() in {"true", "1", "yes"}
        return bool(flag)
    return bool(fields.get("confirmed_at"))


def _is_settlement(fields: dict[str, Any]) -> bool:
    # An explicit status wins unless the settlement indicator says settled.
    if "confirmed" not in fields and "confirmed_at" not in fields:
        return False
    return _pick(fields, "status") is None or _is_settled(fields)


def parse_webhook_event(raw_payload: bytes | str) -> WebhookEvent:
    """Resolve a raw webhook body into one of the known event shapes."""

    try:
        body = json.loads(raw_payload)
    except (TypeError, ValueError):
        return UnrecognizedEvent()
    if not isinstance(body, dict):
        return UnrecognizedEvent()

    fields = _unwrap(body)
    common = {
        "order_id": _pick(fields, "order_id", "orderId"),
        "tx_hash": _pick(fields, "tx_hash", "txHash", "tx"),
        "body": body,
    }

    if _is_settlement(fields):
        return _event_adapter.validate_python(
            {
                "kind": "settlement",
                "gateway_payment_id": _pick(fields, "gatewayId", "gateway_id", "id", "payment_id"),
                "settled": _is_settled(fields),
                **common,
            }
        )
    if _pick(fields, "status") is not None:
        return _event_adapter.validate_python(
            {
                "kind": "gateway_status",
                "gateway_payment_id": _pick(fields, "id", "payment_id", "gatewayId", "gateway_id"),
                "status": _pick(fields, "status"),
                **common,
            }
        )
    return _event_adapter.validate_python(
        {
            "kind": "unrecognized",
            "gateway_payment_id": _pick(fields, "gatewayId", "gateway_id", "id", "payment_id"),
            **common,
        }
    )
