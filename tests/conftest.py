"""Shared fixtures: in-memory database, a registered bot and gateway/notifier fakes."""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from botpay.common.db import Base
from botpay.services.gateway.schemas import OpenedPayment, RemoteStatus
from botpay.services.ledger import models as ledger_models  # noqa: F401
from botpay.services.ledger.repository import PaymentLedger
from botpay.services.reconciliation.service import ReconciliationService
from botpay.services.registry.schemas import BotRegisterRequest, GatewayCredentials
from botpay.services.registry.service import BotRegistry

BOT_TOKEN = "123456:shop-bot-token"
WEBHOOK_SECRET = "whsec-shop-secret"
CALLBACK_URL = "https://pay.example.com/api/payments/webhook"


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class FrozenClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeGateway:
    """Stands in for both the client factory and the per-key client."""

    def __init__(self) -> None:
        self.opened = OpenedPayment(
            gateway_payment_id="g1",
            crypto_amount=Decimal("0.00015"),
            address="addr1",
            payment_url="https://pay/g1",
        )
        self.remote = RemoteStatus(remote_status="pending")
        self.open_error: Exception | None = None
        self.query_error: Exception | None = None
        self.before_query_returns = None
        self.api_keys: list[str] = []
        self.open_calls: list[dict] = []
        self.query_calls: list[str] = []

    def for_api_key(self, api_key: str) -> "FakeGateway":
        self.api_keys.append(api_key)
        return self

    async def open_payment(self, currency, fiat_amount, order_id, callback_url, return_url=None):
        self.open_calls.append(
            {"currency": currency, "fiat_amount": fiat_amount, "order_id": order_id, "callback_url": callback_url}
        )
        if self.open_error is not None:
            raise self.open_error
        return self.opened

    async def query_status(self, gateway_payment_id):
        self.query_calls.append(gateway_payment_id)
        if self.query_error is not None:
            raise self.query_error
        if self.before_query_returns is not None:
            await self.before_query_returns()
        return self.remote


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.error: Exception | None = None

    async def send_payment_confirmed(self, bot_token, chat_id, amount, currency, tx_hash):
        if self.error is not None:
            raise self.error
        self.sent.append(
            {"bot_token": bot_token, "chat_id": chat_id, "amount": amount, "currency": currency, "tx_hash": tx_hash}
        )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def registry(session_factory):
    return BotRegistry(session_factory, ["BTC", "ETH", "USDT"])


def register_bot(registry: BotRegistry, name: str, token: str, secret: str = WEBHOOK_SECRET, currencies=None):
    registry.register(
        BotRegisterRequest(
            name=name,
            token=token,
            allowed_currencies=currencies,
            use_gateway=GatewayCredentials(api_key=f"{name}-api-key", webhook_secret=secret),
        ),
        registered_by="42",
    )
    return registry.authenticate(token)


@pytest.fixture
def bot(registry):
    return register_bot(registry, "shop_bot", BOT_TOKEN)


@pytest.fixture
def ledger(session_factory):
    return PaymentLedger(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def make_service(ledger, registry, gateway, notifier, clock):
    def _make(signature_required: bool = True) -> ReconciliationService:
        return ReconciliationService(
            ledger=ledger,
            registry=registry,
            gateways=gateway,
            notifier=notifier,
            callback_url=CALLBACK_URL,
            payment_ttl=timedelta(minutes=30),
            signature_required=signature_required,
            clock=clock,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()
