"""Normalized shapes returned by the gateway client."""

from decimal import Decimal

from pydantic import BaseModel

ADDRESS_PLACEHOLDER = "awaiting_gateway"


class OpenedPayment(BaseModel):
    """Result of opening a payment at the gateway."""

    gateway_payment_id: str | None
    crypto_amount: Decimal = Decimal("0")
    address: str = ADDRESS_PLACEHOLDER
    payment_url: str


class RemoteStatus(BaseModel):
    """Result of one status poll."""

    remote_status: str
    tx_hash: str | None = None
