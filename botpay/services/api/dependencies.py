"""Process-wide service wiring and FastAPI dependencies."""

import hmac
from datetime import timedelta

from fastapi import Depends, Header

from botpay.common.config import settings
from botpay.common.db import SessionLocal
from botpay.common.errors import AuthenticationError
from botpay.common.logging import bot_id_ctx
from botpay.services.gateway.client import GatewayClientFactory
from botpay.services.ledger.repository import PaymentLedger
from botpay.services.notification.service import TelegramNotifier
from botpay.services.reconciliation.service import ReconciliationService
from botpay.services.registry.schemas import BotCredentials
from botpay.services.registry.service import BotRegistry

registry = BotRegistry(SessionLocal, settings.allowed_currencies_default)
service = ReconciliationService(
    ledger=PaymentLedger(SessionLocal),
    registry=registry,
    gateways=GatewayClientFactory(settings.gateway_base_url, settings.gateway_timeout_seconds),
    notifier=TelegramNotifier(settings.telegram_api_url, settings.notifier_timeout_seconds),
    callback_url=settings.webhook_callback_url,
    payment_ttl=timedelta(minutes=settings.payment_ttl_minutes),
    signature_required=settings.webhook_signature_required,
)


def get_service() -> ReconciliationService:
    return service


def get_registry() -> BotRegistry:
    return registry


def current_bot(
    x_bot_token: str | None = Header(default=None),
    bots: BotRegistry = Depends(get_registry),
) -> BotCredentials:
    """Resolve the calling bot from `x-bot-token`."""

    bot = bots.authenticate(x_bot_token)
    bot_id_ctx.set(bot.bot_id)
    return bot


def require_admin(x_admin_telegram_id: str | None = Header(default=None)) -> str:
    """Only the configured admin Telegram id may manage bots."""

    expected = settings.admin_telegram_id
    if not expected or not x_admin_telegram_id or not hmac.compare_digest(x_admin_telegram_id, expected):
        raise AuthenticationError("Unauthorized: Only the admin can manage bots")
    return x_admin_telegram_id
