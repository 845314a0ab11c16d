"""HTTP client for the crypto payment gateway.

Credentials are supplied per client instance; the factory holds only
transport settings, so there is no shared mutable secret state. Calls are
made once with a bounded timeout and are never retried: a retried
``open_payment`` after an ambiguous failure could open a second remote
payment for the same order.
"""

from decimal import Decimal, InvalidOperation
from time import perf_counter
from typing import Any

import httpx

from botpay.common.errors import (
    GatewayMalformedResponse,
    GatewayNotFound,
    GatewayRejected,
    GatewayUnavailable,
)
from botpay.common.logging import logger
from botpay.common.metrics import gateway_errors_total, gateway_latency_seconds
from botpay.common.tracing import get_tracer
from botpay.services.gateway.schemas import ADDRESS_PLACEHOLDER, OpenedPayment, RemoteStatus

tracer = get_tracer("gateway")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return response.text or f"HTTP {response.status_code}"


def _json_body(response: httpx.Response, operation: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        gateway_errors_total.labels(operation=operation, kind="malformed").inc()
        raise GatewayMalformedResponse(f"{operation}: response is not JSON", response.status_code) from exc
    if not isinstance(body, dict):
        gateway_errors_total.labels(operation=operation, kind="malformed").inc()
        raise GatewayMalformedResponse(f"{operation}: response is not an object", response.status_code)
    # Some deployments wrap the resource as {"data": {...}}.
    if isinstance(body.get("data"), dict):
        return body["data"]
    return body


def _decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


class GatewayClient:
    """One tenant's view of the gateway, bound to that tenant's API key."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def _send(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        start = perf_counter()
        with tracer.start_as_current_span(f"gateway.{operation}"):
            try:
                async with self._client() as client:
                    response = await client.request(method, path, **kwargs)
            except httpx.TimeoutException as exc:
                gateway_errors_total.labels(operation=operation, kind="timeout").inc()
                logger.warning("gateway_timeout operation=%s path=%s", operation, path)
                raise GatewayUnavailable(f"{operation}: gateway timed out") from exc
            except httpx.HTTPError as exc:
                gateway_errors_total.labels(operation=operation, kind="network").inc()
                logger.warning("gateway_network_error operation=%s error=%s", operation, exc)
                raise GatewayUnavailable(f"{operation}: {exc}") from exc
            finally:
                gateway_latency_seconds.labels(operation=operation).observe(max(0.0, perf_counter() - start))

        if response.status_code >= 500:
            gateway_errors_total.labels(operation=operation, kind="server").inc()
            raise GatewayUnavailable(f"{operation}: {_error_message(response)}", response.status_code)
        return response

    async def open_payment(
        self,
        currency: str,
        fiat_amount: Decimal,
        order_id: str,
        callback_url: str,
        return_url: str | None = None,
    ) -> OpenedPayment:
        """Open a remote payment; the local payment id is sent as `order_id`."""

        payload = {
            "currency": currency,
            "amount": float(fiat_amount),
            "order_id": order_id,
            "callback_url": callback_url,
            "return_url": return_url,
            "description": f"Payment for order {order_id}",
        }
        response = await self._send("open_payment", "POST", "/payments", json=payload)
        if response.status_code >= 400:
            gateway_errors_total.labels(operation="open_payment", kind="rejected").inc()
            message = _error_message(response)
            logger.error("gateway_rejected operation=open_payment status=%s message=%s", response.status_code, message)
            raise GatewayRejected(message, response.status_code)

        body = _json_body(response, "open_payment")
        payment_url = body.get("payment_url") or body.get("hosted_url") or body.get("url")
        if not payment_url:
            gateway_errors_total.labels(operation="open_payment", kind="malformed").inc()
            raise GatewayMalformedResponse("open_payment: response has no payment_url", response.status_code)

        gateway_payment_id = body.get("id") or body.get("payment_id")
        return OpenedPayment(
            gateway_payment_id=str(gateway_payment_id) if gateway_payment_id else None,
            crypto_amount=_decimal(body.get("crypto_amount")),
            address=body.get("address") or ADDRESS_PLACEHOLDER,
            payment_url=str(payment_url),
        )

    async def query_status(self, gateway_payment_id: str) -> RemoteStatus:
        """Fetch the remote status; an unknown id raises `GatewayNotFound`."""

        response = await self._send("query_status", "GET", f"/payments/{gateway_payment_id}")
        if response.status_code == 404:
            gateway_errors_total.labels(operation="query_status", kind="not_found").inc()
            raise GatewayNotFound(f"gateway payment {gateway_payment_id} not found", 404)
        if response.status_code >= 400:
            gateway_errors_total.labels(operation="query_status", kind="rejected").inc()
            raise GatewayRejected(_error_message(response), response.status_code)

        body = _json_body(response, "query_status")
        remote_status = body.get("status")
        if not remote_status:
            gateway_errors_total.labels(operation="query_status", kind="malformed").inc()
            raise GatewayMalformedResponse("query_status: response has no status", response.status_code)
        tx_hash = body.get("tx_hash") or body.get("txHash")
        return RemoteStatus(remote_status=str(remote_status), tx_hash=str(tx_hash) if tx_hash else None)


class GatewayClientFactory:
    """Builds per-tenant clients from shared transport settings."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def for_api_key(self, api_key: str) -> GatewayClient:
        return GatewayClient(api_key, self.base_url, self.timeout_seconds, transport=self.transport)
