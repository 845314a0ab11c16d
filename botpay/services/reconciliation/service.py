"""Payment reconciliation core.

Owns the ``pending -> {confirmed, failed, expired}`` state machine. Three
paths feed it: creation, status polls triggered by reads, and gateway
webhooks. Every terminal write goes through the ledger's compare-and-set with
``pending`` as the expected status, so whichever path lands first wins and
every later writer becomes a no-op.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from botpay.common.errors import GatewayError, InvalidSignature, PaymentNotFound, ValidationError
from botpay.common.logging import logger, payment_id_ctx
from botpay.common.metrics import (
    notification_failures_total,
    payment_create_failures_total,
    payment_settle_seconds,
    payment_transitions_total,
    payments_created_total,
    transition_noops_total,
    webhook_events_total,
)
from botpay.common.state_machine import CONFIRMED, EXPIRED, PENDING, is_terminal
from botpay.services.gateway.client import GatewayClientFactory
from botpay.services.ledger.models import Payment
from botpay.services.ledger.repository import PaymentLedger
from botpay.services.reconciliation.schemas import PaymentCreated, PaymentStatusView, WebhookAck
from botpay.services.registry.schemas import BotCredentials
from botpay.services.registry.service import BotRegistry
from botpay.services.webhooks.events import WebhookEvent, map_remote_status, parse_webhook_event
from botpay.services.webhooks.signatures import verify


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReconciliationService:
    """Creates payments and applies poll/webhook outcomes exactly once."""

    def __init__(
        self,
        ledger: PaymentLedger,
        registry: BotRegistry,
        gateways: GatewayClientFactory,
        notifier,
        callback_url: str,
        payment_ttl: timedelta = timedelta(minutes=30),
        signature_required: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ledger = ledger
        self.registry = registry
        self.gateways = gateways
        self.notifier = notifier
        self.callback_url = callback_url
        self.payment_ttl = payment_ttl
        self.signature_required = signature_required
        self.clock = clock

    @staticmethod
    def _validate_amount(fiat_amount) -> Decimal:
        try:
            amount = Decimal(str(fiat_amount))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError("Amount must be a number") from exc
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be greater than 0")
        return amount

    async def create_payment(
        self,
        bot: BotCredentials,
        beneficiary_id: str,
        currency: str,
        fiat_amount,
    ) -> PaymentCreated:
        """Open a gateway payment and persist it as `pending`.

        Nothing is stored when the gateway call fails.
        """

        currency = (currency or "").strip().upper()
        if not beneficiary_id or not currency:
            payment_create_failures_total.labels(reason="validation").inc()
            raise ValidationError("Missing required fields: telegramUserId, currency, amount")
        try:
            amount = self._validate_amount(fiat_amount)
        except ValidationError:
            payment_create_failures_total.labels(reason="validation").inc()
            raise
        if not bot.allows(currency):
            payment_create_failures_total.labels(reason="currency").inc()
            raise ValidationError(
                f"Currency {currency} is not allowed for this bot. "
                f"Allowed currencies: {', '.join(bot.allowed_currencies)}"
            )

        payment_id = str(uuid4())
        payment_id_ctx.set(payment_id)
        try:
            opened = await self.gateways.for_api_key(bot.api_key).open_payment(
                currency=currency,
                fiat_amount=amount,
                order_id=payment_id,
                callback_url=self.callback_url,
            )
        except GatewayError as exc:
            payment_create_failures_total.labels(reason="gateway").inc()
            logger.error("gateway_open_failed bot=%s currency=%s error=%s", bot.name, currency, exc)
            raise

        now = self.clock()
        payment = Payment(
            payment_id=payment_id,
            gateway_payment_id=opened.gateway_payment_id,
            owner_bot_id=bot.bot_id,
            beneficiary_id=str(beneficiary_id),
            currency=currency,
            requested_amount=amount,
            crypto_amount=opened.crypto_amount,
            address=opened.address,
            payment_url=opened.payment_url,
            status=PENDING,
            tx_hash=None,
            raw_webhook_payload=None,
            expires_at=now + self.payment_ttl,
            created_at=now,
            updated_at=now,
        )
        self.ledger.insert(payment)
        payments_created_total.labels(currency=currency).inc()
        logger.info(
            "payment_created payment_id=%s gateway_payment_id=%s currency=%s amount=%s",
            payment_id,
            opened.gateway_payment_id,
            currency,
            amount,
        )
        return PaymentCreated(
            payment_id=payment.payment_id,
            currency=payment.currency,
            amount=payment.requested_amount,
            crypto_amount=payment.crypto_amount,
            address=payment.address,
            payment_url=payment.payment_url,
            expires_at=payment.expires_at,
        )

    async def get_status(self, bot: BotCredentials, payment_id: str) -> PaymentStatusView:
        """Return the caller's payment, refreshing it first while it is pending.

        Expiry is decided locally before any remote call. Poll failures leave
        the stored status untouched and are never surfaced to the caller.
        """

        payment = self.ledger.find_by_local_id(payment_id, owner_bot_id=bot.bot_id)
        if payment is None:
            raise PaymentNotFound("Payment not found")
        payment_id_ctx.set(payment.payment_id)

        if payment.status == PENDING:
            if self.clock() > _as_utc(payment.expires_at):
                payment, _ = self._transition(payment, EXPIRED, source="expiry", reason="expired_on_read")
            else:
                payment = await self._refresh_from_gateway(payment, bot)
        return PaymentStatusView(
            payment_id=payment.payment_id,
            status=payment.status,
            tx_hash=payment.tx_hash,
            expires_at=payment.expires_at,
        )

    async def _refresh_from_gateway(self, payment: Payment, bot: BotCredentials) -> Payment:
        if not payment.gateway_payment_id:
            return payment
        try:
            remote = await self.gateways.for_api_key(bot.api_key).query_status(payment.gateway_payment_id)
        except Exception as exc:
            logger.warning("status_poll_failed payment_id=%s error=%s", payment.payment_id, exc)
            return payment

        if map_remote_status(remote.remote_status) != CONFIRMED:
            return payment
        if not remote.tx_hash:
            logger.warning("poll_confirmation_without_tx_hash payment_id=%s", payment.payment_id)
            return payment
        payment, applied = self._transition(
            payment,
            CONFIRMED,
            source="poll",
            reason=f"gateway_{remote.remote_status.lower()}",
            fields={"tx_hash": remote.tx_hash},
        )
        if applied:
            await self._notify_confirmed(payment, bot)
        return payment

    async def handle_webhook(
        self,
        raw_payload: bytes,
        signature_header: str | None,
        aux_headers: Mapping[str, str] | None = None,
    ) -> WebhookAck:
        """Authenticate and apply one gateway webhook delivery.

        Raises `PaymentNotFound` or `InvalidSignature`; every other outcome,
        including replays against a terminal payment, is accepted.
        """

        event = parse_webhook_event(raw_payload)
        payment = self._locate(event)
        if payment is None:
            webhook_events_total.labels(outcome="not_found").inc()
            logger.error(
                "webhook_payment_not_found kind=%s gateway_payment_id=%s order_id=%s",
                event.kind,
                event.gateway_payment_id,
                event.order_id,
            )
            raise PaymentNotFound("Payment not found")
        payment_id_ctx.set(payment.payment_id)

        owner = self.registry.credentials_for(payment.owner_bot_id)
        self._authenticate_webhook(payment, owner, raw_payload, signature_header, aux_headers)

        if is_terminal(payment.status):
            webhook_events_total.labels(outcome="duplicate").inc()
            logger.info("webhook_noop_terminal payment_id=%s status=%s", payment.payment_id, payment.status)
            return WebhookAck(accepted=True, payment_id=payment.payment_id, status=payment.status)

        target = event.target_status()
        if target == CONFIRMED and not event.tx_hash:
            logger.warning("webhook_confirmation_without_tx_hash payment_id=%s", payment.payment_id)
            target = None
        if target is None:
            if event.body:
                self.ledger.record_webhook_payload(payment.payment_id, event.body)
            webhook_events_total.labels(outcome="no_transition").inc()
            return WebhookAck(accepted=True, payment_id=payment.payment_id, status=payment.status)

        fields = {"raw_webhook_payload": event.body}
        if target == CONFIRMED:
            fields["tx_hash"] = event.tx_hash
        payment, applied = self._transition(
            payment, target, source="webhook", reason=f"webhook_{event.kind}", fields=fields
        )
        webhook_events_total.labels(outcome="applied" if applied else "duplicate").inc()
        if applied and target == CONFIRMED and owner is not None:
            await self._notify_confirmed(payment, owner)
        return WebhookAck(
            accepted=True,
            payment_id=payment.payment_id,
            status=payment.status,
            applied=applied,
        )

    def _locate(self, event: WebhookEvent) -> Payment | None:
        """Gateway id first, then the local id echoed back as the order id."""

        if event.gateway_payment_id:
            payment = self.ledger.find_by_gateway_id(event.gateway_payment_id)
            if payment is not None:
                return payment
        for local_id in (event.order_id, event.gateway_payment_id):
            if local_id:
                payment = self.ledger.find_by_local_id(local_id)
                if payment is not None:
                    return payment
        return None

    def _authenticate_webhook(
        self,
        payment: Payment,
        owner: BotCredentials | None,
        raw_payload: bytes,
        signature_header: str | None,
        aux_headers: Mapping[str, str] | None,
    ) -> None:
        if signature_header and signature_header.strip():
            secret = owner.webhook_secret if owner is not None else None
            if not verify(raw_payload, signature_header, aux_headers, secret):
                webhook_events_total.labels(outcome="invalid_signature").inc()
                logger.error(
                    "webhook_invalid_signature possible forgery payment_id=%s owner_bot_id=%s",
                    payment.payment_id,
                    payment.owner_bot_id,
                )
                raise InvalidSignature("Invalid signature")
            return

        if self.signature_required:
            webhook_events_total.labels(outcome="invalid_signature").inc()
            logger.error("webhook_missing_signature payment_id=%s", payment.payment_id)
            raise InvalidSignature("Missing signature")

        logger.warning("webhook_unsigned_accepted payment_id=%s", payment.payment_id)
        webhook_events_total.labels(outcome="unsigned").inc()
        self.ledger.append_audit(payment.payment_id, payment.status, reason="unsigned_webhook", source="webhook")

    def _transition(
        self,
        payment: Payment,
        target: str,
        source: str,
        reason: str,
        fields: dict | None = None,
    ) -> tuple[Payment, bool]:
        """Compare-and-set from the observed status, then re-read the winner."""

        applied = self.ledger.compare_and_set_status(
            payment.payment_id,
            payment.status,
            target,
            fields=fields,
            reason=reason,
            source=source,
        )
        if applied:
            payment_transitions_total.labels(to_status=target, source=source).inc()
            logger.info(
                "payment_transition payment_id=%s from=%s to=%s source=%s",
                payment.payment_id,
                payment.status,
                target,
                source,
            )
        else:
            transition_noops_total.labels(source=source).inc()

        current = self.ledger.find_by_local_id(payment.payment_id) or payment
        if applied:
            self._observe_terminal(current, target)
        return current, applied

    def _observe_terminal(self, payment: Payment, terminal_state: str) -> None:
        if payment.created_at is None:
            return
        elapsed = max(0.0, (self.clock() - _as_utc(payment.created_at)).total_seconds())
        payment_settle_seconds.labels(terminal_state=terminal_state).observe(elapsed)

    async def _notify_confirmed(self, payment: Payment, owner: BotCredentials) -> None:
        """Best effort: a failed message never rolls back the confirmation."""

        try:
            await self.notifier.send_payment_confirmed(
                bot_token=owner.token,
                chat_id=payment.beneficiary_id,
                amount=payment.requested_amount,
                currency=payment.currency,
                tx_hash=payment.tx_hash,
            )
        except Exception as exc:
            notification_failures_total.inc()
            logger.warning(
                "confirmation_notify_failed payment_id=%s bot=%s error=%s",
                payment.payment_id,
                owner.name,
                exc,
            )

    def expire_overdue(self, now: datetime | None = None) -> int:
        """Expire every pending payment past its deadline; returns how many moved."""

        now = now or self.clock()
        expired = 0
        for payment in self.ledger.list_overdue(now):
            _, applied = self._transition(payment, EXPIRED, source="sweeper", reason="expired_by_sweeper")
            expired += int(applied)
        return expired

    async def expiry_sweeper(self, interval_seconds: float) -> None:
        """Background loop running `expire_overdue`."""

        while True:
            try:
                expired = self.expire_overdue()
                if expired:
                    logger.info("expiry_sweep expired=%s", expired)
            except Exception as exc:
                logger.exception("expiry sweep failed: %s", exc)
            await asyncio.sleep(interval_seconds)
