"""HTTP intake: create and fetch payments.

Processing is never triggered synchronously here; a created payment is handed
to the worker through the work queue.
"""

from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from payproc.common.config import settings
from payproc.common.db import make_engine, make_session_factory
from payproc.common.errors import PaymentError
from payproc.common.events import RabbitMQPublisher
from payproc.common.logging import configure_logging, logger, trace_id_ctx
from payproc.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    payment_latency_seconds,
    payment_requests_total,
)
from payproc.common.startup import log_startup_config
from payproc.common.tracing import instrument_app, setup_tracing
from payproc.services.payments.schemas import PaymentCreateRequest, PaymentResponse
from payproc.services.payments.service import PaymentService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    ["SERVICE_NAME", "POSTGRES_DSN", "RABBITMQ_URL", "MESSAGE_QUEUE", "DEAD_LETTER_QUEUE"],
)
engine = make_engine(settings.postgres_dsn)
publisher = RabbitMQPublisher(settings.rabbitmq_url, settings.message_queue, settings.dead_letter_queue)
service = PaymentService(
    make_session_factory(engine),
    publisher=publisher,
    service_name=settings.service_name,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Release broker and store handles with the application lifecycle."""

    yield
    await publisher.close()
    engine.dispose()


app = FastAPI(title="payproc intake", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.exception_handler(PaymentError)
async def payment_error_handler(_: Request, exc: PaymentError) -> JSONResponse:
    """Render typed errors as `{code, message, description}`."""

    if exc.code >= 500:
        logger.error("request_failed code=%s error=%s", exc.code, exc)
    else:
        logger.info("request_rejected code=%s error=%s", exc.code, exc)
    return JSONResponse(status_code=exc.code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "code": 400,
            "message": "validation failed",
            "description": "payment request validation failed",
            "params": jsonable_encoder({"errors": exc.errors()}),
        },
    )


@app.post("/v1/payments", response_model=PaymentResponse, status_code=201)
async def create_payment(req: PaymentCreateRequest, x_trace_id: str | None = Header(default=None)):
    """Create a PENDING payment and enqueue its processing task."""

    if x_trace_id:
        trace_id_ctx.set(x_trace_id)
    payment_requests_total.labels(service=settings.service_name).inc()
    with payment_latency_seconds.labels(service=settings.service_name).time():
        payment = await service.create_payment(req)
    return PaymentResponse.model_validate(payment)


@app.get("/v1/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: str):
    """Fetch current status for one payment."""

    return PaymentResponse.model_validate(service.get_payment(payment_id))


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
