"""Worker process: consumes processing tasks until SIGINT/SIGTERM."""

import asyncio
import signal

import aio_pika

from payproc.common.config import settings
from payproc.common.db import make_engine, make_session_factory
from payproc.common.logging import configure_logging, logger
from payproc.common.metrics import serve_metrics
from payproc.common.startup import log_startup_config
from payproc.services.payments.processor import SimulatedPaymentProcessor
from payproc.services.payments.service import PaymentService
from payproc.services.worker.consumer import PaymentQueueConsumer


async def run() -> int:
    """Compose store, service and consumer; block until a shutdown signal."""

    # Each worker holds a connection and a row lock for the whole effect.
    engine = make_engine(settings.postgres_dsn, pool_size=settings.worker_count)
    service = PaymentService(
        make_session_factory(engine),
        processor=SimulatedPaymentProcessor(
            latency_seconds=settings.processing_latency_seconds,
            failure_rate=settings.processing_failure_rate,
        ),
        service_name=settings.service_name,
    )
    try:
        try:
            connection = await aio_pika.connect_robust(settings.rabbitmq_url)
        except Exception as exc:
            logger.error("broker_connect_failed error=%s", exc)
            return 1

        consumer = PaymentQueueConsumer(connection, service, settings)
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        try:
            await consumer.start(stop_event)
        except Exception as exc:
            logger.exception("consumer_failed error=%s", exc)
            return 1
        finally:
            await consumer.close()
        logger.info("worker_exited")
        return 0
    finally:
        engine.dispose()


def main() -> None:
    configure_logging()
    log_startup_config(
        settings.service_name,
        [
            "SERVICE_NAME",
            "POSTGRES_DSN",
            "RABBITMQ_URL",
            "MESSAGE_QUEUE",
            "DEAD_LETTER_QUEUE",
            "WORKER_COUNT",
            "RETRY_ATTEMPTS",
            "RETRY_DELAY_TYPE",
            "RETRY_DELAY_SECONDS",
            "RETRY_MAX_DELAY_SECONDS",
        ],
    )
    serve_metrics(settings.worker_metrics_port)
    raise SystemExit(asyncio.run(run()))


if __name__ == "__main__":
    main()
