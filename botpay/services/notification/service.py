"""Confirmation messages delivered through the Telegram Bot API."""

from decimal import Decimal

import httpx

from botpay.common.errors import NotificationError
from botpay.common.logging import logger


def confirmation_text(amount: Decimal, currency: str, tx_hash: str | None) -> str:
    return (
        "✅ Payment confirmed!\n\n"
        f"Amount: {amount} {currency}\n"
        f"Transaction: {tx_hash or 'n/a'}"
    )


class TelegramNotifier:
    """Sends one message per confirmed payment, using the owning bot's token."""

    def __init__(
        self,
        api_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def send_payment_confirmed(
        self,
        bot_token: str,
        chat_id: str,
        amount: Decimal,
        currency: str,
        tx_hash: str | None,
    ) -> None:
        """Post the confirmation; any delivery problem raises `NotificationError`."""

        url = f"{self.api_url}/bot{bot_token}/sendMessage"
        body = {
            "chat_id": chat_id,
            "text": confirmation_text(amount, currency, tx_hash),
            "parse_mode": "HTML",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                resp = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise NotificationError(f"telegram send failed: {exc}") from exc
        if resp.status_code >= 400:
            raise NotificationError(f"telegram send rejected status={resp.status_code} body={resp.text}")
        logger.info("confirmation_sent chat_id=%s", chat_id)
