"""HTTP surface for bot payment creation, status reads and gateway webhooks."""

import asyncio
from contextlib import asynccontextmanager, suppress
from time import perf_counter
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from botpay.common.config import settings
from botpay.common.errors import (
    AuthenticationError,
    BotPayError,
    DuplicateKey,
    GatewayError,
    InvalidSignature,
    PaymentNotFound,
    ValidationError,
)
from botpay.common.logging import configure_logging, logger, trace_id_ctx
from botpay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from botpay.common.startup import log_startup_config
from botpay.common.tracing import instrument_app, setup_tracing
from botpay.services.api.dependencies import current_bot, get_service, service
from botpay.services.reconciliation.schemas import PaymentCreateRequest
from botpay.services.reconciliation.service import ReconciliationService
from botpay.services.registry.router import router as bots_router
from botpay.services.registry.schemas import BotCredentials

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "POSTGRES_DSN",
        "SERVER_URL",
        "GATEWAY_BASE_URL",
        "GATEWAY_TIMEOUT_SECONDS",
        "WEBHOOK_SIGNATURE_REQUIRED",
        "EXPIRY_SWEEP_INTERVAL_SECONDS",
    ],
)

SIGNATURE_HEADERS = ("x-signature", "x-usegateway-signature", "webhook-signature")
ERROR_STATUS: list[tuple[type[BotPayError], int]] = [
    (ValidationError, 400),
    (AuthenticationError, 401),
    (InvalidSignature, 401),
    (PaymentNotFound, 404),
    (DuplicateKey, 409),
    (GatewayError, 502),
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Run the expiry sweeper alongside the app when enabled."""

    sweeper_task = None
    if settings.expiry_sweep_interval_seconds > 0:
        sweeper_task = asyncio.create_task(service.expiry_sweeper(settings.expiry_sweep_interval_seconds))
    yield
    if sweeper_task is not None:
        sweeper_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper_task


app = FastAPI(title="BotPay", lifespan=lifespan)
instrument_app(app)
app.include_router(bots_router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(route=route, method=method).observe(elapsed)
        http_requests_total.labels(route=route, method=method, status_code=str(status_code)).inc()


@app.exception_handler(BotPayError)
async def botpay_error_handler(request: Request, exc: BotPayError) -> JSONResponse:
    """Map domain errors onto the `{success, error}` envelope."""

    status_code = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
    body = {"success": False, "error": str(exc)}
    if isinstance(exc, GatewayError):
        body = {"success": False, "error": "Failed to create payment with gateway", "details": exc.message}
    if status_code >= 500:
        logger.error("request_failed path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"Invalid or missing fields: {', '.join(fields)}"},
    )


@app.post("/api/payments/create")
async def create_payment(
    req: PaymentCreateRequest,
    bot: BotCredentials = Depends(current_bot),
    payments: ReconciliationService = Depends(get_service),
):
    """Open a gateway payment for `telegramUserId` and store it as pending."""

    created = await payments.create_payment(bot, req.telegram_user_id, req.currency, req.amount)
    return {"success": True, "data": created.model_dump(mode="json", by_alias=True)}


@app.get("/api/payments/{payment_id}")
async def get_payment(
    payment_id: str,
    bot: BotCredentials = Depends(current_bot),
    payments: ReconciliationService = Depends(get_service),
):
    """Current status of one of the caller's payments."""

    view = await payments.get_status(bot, payment_id)
    return {"success": True, "data": view.model_dump(mode="json", by_alias=True)}


@app.post("/api/payments/webhook")
async def payment_webhook(
    request: Request,
    payments: ReconciliationService = Depends(get_service),
):
    """Gateway callback; the raw body is verified before it is parsed."""

    raw_payload = await request.body()
    signature = next((request.headers[name] for name in SIGNATURE_HEADERS if request.headers.get(name)), None)
    ack = await payments.handle_webhook(raw_payload, signature, dict(request.headers))
    return {"success": True, "data": ack.model_dump(mode="json", by_alias=True)}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
