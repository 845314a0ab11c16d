"""Payment ledger: durable store with conditional status updates.

`compare_and_set_status` is the only way status changes. It is a single
``UPDATE ... WHERE status = :expected``; a rowcount of zero means another
writer already moved the payment and is reported as a no-op, not an error.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from botpay.common.errors import DuplicateKey
from botpay.common.logging import logger
from botpay.common.state_machine import CONFIRMED, PENDING, validate_transition
from botpay.services.ledger.models import Payment, PaymentTimeline

MUTABLE_FIELDS = frozenset({"tx_hash", "raw_webhook_payload"})


class PaymentLedger:
    """Reads and conditional writes over the `payments` table."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def insert(self, payment: Payment) -> Payment:
        """Persist a new payment and its creation timeline row."""

        with self.session_factory() as db:
            try:
                db.add(payment)
                db.flush()
                db.add(
                    PaymentTimeline(
                        payment_id=payment.payment_id,
                        from_state=None,
                        to_state=payment.status,
                        reason="payment_created",
                        source="create",
                    )
                )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateKey(f"payment {payment.payment_id} already exists") from exc
        return payment

    def find_by_local_id(self, payment_id: str, owner_bot_id: str | None = None) -> Payment | None:
        """Look up by local id; with `owner_bot_id` the lookup is scoped to that owner."""

        stmt = select(Payment).where(Payment.payment_id == payment_id)
        if owner_bot_id is not None:
            stmt = stmt.where(Payment.owner_bot_id == owner_bot_id)
        with self.session_factory() as db:
            return db.execute(stmt).scalar_one_or_none()

    def find_by_gateway_id(self, gateway_payment_id: str) -> Payment | None:
        with self.session_factory() as db:
            return db.execute(
                select(Payment).where(Payment.gateway_payment_id == gateway_payment_id)
            ).scalar_one_or_none()

    def list_overdue(self, now: datetime, limit: int = 500) -> list[Payment]:
        """Pending payments whose deadline has passed."""

        with self.session_factory() as db:
            return list(
                db.execute(
                    select(Payment)
                    .where(Payment.status == PENDING, Payment.expires_at < now)
                    .order_by(Payment.expires_at)
                    .limit(limit)
                ).scalars()
            )

    def compare_and_set_status(
        self,
        payment_id: str,
        expected_status: str,
        new_status: str,
        fields: dict[str, Any] | None = None,
        reason: str = "",
        source: str = "core",
    ) -> bool:
        """Move `payment_id` from `expected_status` to `new_status` atomically.

        Returns False without writing anything when the stored status no longer
        equals `expected_status`.
        """

        validate_transition(expected_status, new_status)
        fields = dict(fields or {})
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not writable through a transition: {sorted(unknown)}")
        if new_status == CONFIRMED:
            if not fields.get("tx_hash"):
                raise ValueError("confirmed payments require a tx_hash")
        else:
            fields.pop("tx_hash", None)

        values = {"status": new_status, "updated_at": datetime.now(timezone.utc), **fields}
        with self.session_factory() as db:
            result = db.execute(
                update(Payment)
                .where(Payment.payment_id == payment_id, Payment.status == expected_status)
                .values(**values)
            )
            if result.rowcount != 1:
                db.rollback()
                logger.info(
                    "transition_noop payment_id=%s expected=%s target=%s source=%s",
                    payment_id,
                    expected_status,
                    new_status,
                    source,
                )
                return False
            db.add(
                PaymentTimeline(
                    payment_id=payment_id,
                    from_state=expected_status,
                    to_state=new_status,
                    reason=reason or f"{source}_{new_status}",
                    source=source,
                )
            )
            db.commit()
        return True

    def record_webhook_payload(self, payment_id: str, payload: dict[str, Any]) -> bool:
        """Keep the latest raw webhook body on a payment that is still pending."""

        with self.session_factory() as db:
            result = db.execute(
                update(Payment)
                .where(Payment.payment_id == payment_id, Payment.status == PENDING)
                .values(raw_webhook_payload=payload, updated_at=datetime.now(timezone.utc))
            )
            db.commit()
            return result.rowcount == 1

    def append_audit(self, payment_id: str, status: str, reason: str, source: str) -> None:
        """Record a non-transition audit event (e.g. an unsigned webhook)."""

        with self.session_factory() as db:
            db.add(
                PaymentTimeline(
                    payment_id=payment_id,
                    from_state=status,
                    to_state=status,
                    reason=reason,
                    source=source,
                )
            )
            db.commit()

    def timeline(self, payment_id: str) -> list[PaymentTimeline]:
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(PaymentTimeline)
                    .where(PaymentTimeline.payment_id == payment_id)
                    .order_by(PaymentTimeline.created_at, PaymentTimeline.timeline_id)
                ).scalars()
            )
