"""Request/response schemas for the payment operations."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

Amount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentCreateRequest(CamelModel):
    """Payload accepted by `POST /api/payments/create`."""

    telegram_user_id: str
    currency: str
    amount: Decimal

    @field_validator("telegram_user_id", mode="before")
    @classmethod
    def _coerce_user_id(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class PaymentCreated(CamelModel):
    payment_id: str
    currency: str
    amount: Amount
    crypto_amount: Amount
    address: str
    payment_url: str
    expires_at: datetime


class PaymentStatusView(CamelModel):
    payment_id: str
    status: str
    tx_hash: str | None = None
    expires_at: datetime


class WebhookAck(CamelModel):
    """Outcome of one webhook delivery; `applied` is False for no-ops."""

    accepted: bool
    payment_id: str
    status: str
    applied: bool = False
