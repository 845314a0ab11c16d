"""Payment ledger models.

`payments` is the source of truth for payment state; `payment_timeline` is an
append-only audit trail of every transition and every flagged webhook.
Neither table is ever pruned.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from botpay.common.db import Base, JSONType
from botpay.common.state_machine import PENDING


class Payment(Base):
    """Current state of one payment request."""

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_owner_beneficiary_status", "owner_bot_id", "beneficiary_id", "status"),
        CheckConstraint("status IN ('pending', 'confirmed', 'failed', 'expired')", name="ck_payments_status"),
        CheckConstraint("(status = 'confirmed') = (tx_hash IS NOT NULL)", name="ck_payments_tx_hash_confirmed"),
    )

    payment_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    gateway_payment_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
    owner_bot_id: Mapped[str] = mapped_column(ForeignKey("bots.bot_id"), index=True)
    beneficiary_id: Mapped[str] = mapped_column(String)
    currency: Mapped[str] = mapped_column(String(16))
    requested_amount: Mapped[Decimal] = mapped_column(Numeric(20, 8))
    crypto_amount: Mapped[Decimal] = mapped_column(Numeric(30, 12), default=Decimal("0"))
    address: Mapped[str] = mapped_column(String)
    payment_url: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, index=True, default=PENDING)
    tx_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    raw_webhook_payload: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=func.now(),
    )


class PaymentTimeline(Base):
    """Immutable audit row for a transition or a flagged webhook delivery."""

    __tablename__ = "payment_timeline"

    timeline_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    payment_id: Mapped[str] = mapped_column(ForeignKey("payments.payment_id"), index=True)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    source: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now()
    )
