"""Telegram confirmation notifier."""

import json
from decimal import Decimal

import httpx
import pytest

from botpay.common.errors import NotificationError
from botpay.services.notification.service import TelegramNotifier, confirmation_text


def notifier_for(handler) -> TelegramNotifier:
    return TelegramNotifier("https://telegram.test/", timeout_seconds=5, transport=httpx.MockTransport(handler))


def test_confirmation_text_mentions_amount_and_tx():
    text = confirmation_text(Decimal("10"), "BTC", "0xabc")

    assert "10 BTC" in text
    assert "0xabc" in text
    assert "n/a" in confirmation_text(Decimal("1"), "ETH", None)


@pytest.mark.asyncio
async def test_sends_message_with_owner_bot_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    await notifier_for(handler).send_payment_confirmed("123:abc", "777", Decimal("10"), "BTC", "0xabc")

    assert str(seen[0].url) == "https://telegram.test/bot123:abc/sendMessage"
    body = json.loads(seen[0].content)
    assert body["chat_id"] == "777"
    assert body["parse_mode"] == "HTML"
    assert "0xabc" in body["text"]


@pytest.mark.asyncio
async def test_rejected_send_raises():
    notifier = notifier_for(lambda request: httpx.Response(403, json={"ok": False}))

    with pytest.raises(NotificationError):
        await notifier.send_payment_confirmed("123:abc", "777", Decimal("10"), "BTC", None)


@pytest.mark.asyncio
async def test_network_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NotificationError):
        await notifier_for(handler).send_payment_confirmed("123:abc", "777", Decimal("10"), "BTC", "0x1")
